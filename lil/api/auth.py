import logging
from flask import Blueprint, current_app, g, jsonify, redirect, request, url_for

from lil.errors import LilError, INVALID, NOT_FOUND, error_response
from lil.services import users as user_service
from lil.services.identity_linker import IdentityLinker
from lil.services.sessions import current_sessions

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def authenticate():
    """Load the calling user from an API key or the session cookie.

    Sets ``g.user`` and ``g.user_id`` (0 when anonymous). An invalid API key
    is rejected outright; a session pointing at a missing user is ignored.
    """
    g.user, g.user_id = None, 0

    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        try:
            g.user = user_service.authenticate_api_key(header[len('Bearer '):].strip())
        except LilError as e:
            return error_response(e)
        g.user_id = g.user.id
        return None

    session = current_sessions().current()
    if session.user_id:
        try:
            g.user = user_service.find_user_by_id(session.user_id)
            g.user_id = g.user.id
        except LilError as e:
            logger.warning("cannot find session user: id=%d err=%s", session.user_id, e)
    return None


def get_provider(name):
    provider = current_app.extensions['lil.oauth'].get(name)
    if provider is None:
        raise LilError(NOT_FOUND, f'Unknown login provider: {name}.')
    return provider


def callback_url(name):
    base = current_app.config.get('BASE_URL')
    path = url_for('auth.oauth_callback', provider=name)
    if base:
        return base.rstrip('/') + path
    return url_for('auth.oauth_callback', provider=name, _external=True)


@auth_bp.route('/login', methods=['GET'])
def login():
    """List the providers a user can log in with."""
    providers = sorted(current_app.extensions['lil.oauth'])
    return jsonify({
        'providers': [
            {'name': name, 'url': url_for('auth.oauth_login', provider=name)}
            for name in providers
        ],
        'flash': g.get('flash'),
    }), 200


@auth_bp.route('/logout', methods=['POST', 'DELETE'])
def logout():
    """Reset the session cookie and go home."""
    sessions = current_sessions()
    sessions.update(sessions.logout())
    return redirect('/', code=302)


@auth_bp.route('/oauth/<provider>', methods=['GET'])
def oauth_login(provider):
    """Store a fresh CSRF state in the session and send the user to the provider."""
    oauth = get_provider(provider)
    sessions = current_sessions()

    session = sessions.begin_login(sessions.current())
    sessions.update(session)

    return redirect(oauth.authorization_url(session.state, callback_url(provider)), code=302)


@auth_bp.route('/oauth/<provider>/callback', methods=['GET'])
def oauth_callback(provider):
    """Validate the returned state, resolve the provider account and log in."""
    oauth = get_provider(provider)
    sessions = current_sessions()
    session = sessions.current()

    # State and deferred redirect are single-use whatever happens next
    sessions.update(session.consumed())

    if request.args.get('error'):
        raise LilError(INVALID, f'{provider} login was not authorized.')

    linker = IdentityLinker(require_verified_email=current_app.config['REQUIRE_VERIFIED_EMAIL'])
    user = sessions.complete_login(
        session, oauth,
        state=request.args.get('state', ''),
        code=request.args.get('code', ''),
        linker=linker,
        redirect_uri=callback_url(provider),
    )

    sessions.update(sessions.authenticate(session, user.id))
    logger.info("user logged in: id=%d provider=%s", user.id, provider)

    return redirect(_local_path(session.redirect_url), code=302)


def _local_path(url):
    # Only same-site paths; anything else falls back to the landing page
    if url and url.startswith('/') and not url.startswith('//'):
        return url
    return '/'
