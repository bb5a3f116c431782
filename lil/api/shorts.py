from flask import Blueprint, current_app, g, jsonify, redirect, request

from lil.errors import LilError, INVALID
from lil.utils.decorators import login_required
from lil.utils.flash import set_flash

shorts_bp = Blueprint('shorts', __name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def get_store():
    return current_app.extensions['lil.short_links']


def wants_json():
    best = request.accept_mimetypes.best_match(['application/json', 'text/html'])
    return request.is_json or best == 'application/json'


def shortened_url(key):
    base = current_app.config.get('BASE_URL') or request.host_url
    return f"{base.rstrip('/')}/s/{key}"


@shorts_bp.route('/s/<key>', methods=['GET'])
def follow_short(key):
    """Redirect to the target of a short link."""
    short = get_store().find_by_key(key)
    return redirect(short.url, code=301)


@shorts_bp.route('/s/<key>', methods=['DELETE'])
@login_required
def delete_short(key):
    """Delete a short link owned by the caller."""
    get_store().delete(key, caller_id=g.user_id)

    message = f'Successfully deleted short {key}.'
    if wants_json():
        return jsonify({'message': message, 'key': key}), 200

    return set_flash(redirect('/short', code=302), message)


@shorts_bp.route('/short/new', methods=['POST'])
@login_required
def create_short():
    """Shorten a URL given as JSON ``{"url": ...}`` or form field ``url``.

    Any caller-supplied key is ignored; keys are always generated.
    """
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise LilError(INVALID, "We couldn't parse the request body.")
        url = data.get('url')
    else:
        url = request.form.get('url')

    if url is not None and not isinstance(url, str):
        raise LilError(INVALID, 'Invalid URL passed.')

    short = get_store().create(url, owner_id=g.user_id)

    return jsonify({
        'key': short.key,
        'shortened_url': shortened_url(short.key),
    }), 201


@shorts_bp.route('/short', methods=['GET'])
@login_required
def list_shorts():
    """List short links.

    Filters come from a JSON body (``key``, ``url``, ``offset``, ``limit``) or
    from the ``offset``/``limit`` query parameters.
    """
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise LilError(INVALID, 'Invalid JSON body')
        key, url = data.get('key'), data.get('url')
        offset, limit = data.get('offset', 0), data.get('limit', DEFAULT_LIMIT)
    else:
        key, url = request.args.get('key'), request.args.get('url')
        offset = request.args.get('offset', 0, type=int)
        limit = request.args.get('limit', DEFAULT_LIMIT, type=int)

    for value in (key, url):
        if value is not None and not isinstance(value, str):
            raise LilError(INVALID, 'Invalid filter.')
    if not isinstance(offset, int) or not isinstance(limit, int) or offset < 0 or limit < 0:
        raise LilError(INVALID, 'Invalid offset or limit.')

    shorts, total = get_store().find(
        key=key, url=url, offset=offset, limit=min(limit or DEFAULT_LIMIT, MAX_LIMIT)
    )

    return jsonify({
        'shorts': [s.to_dict() for s in shorts],
        'n': total,
        'flash': g.get('flash'),
    }), 200
