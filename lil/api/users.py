from flask import Blueprint, g, jsonify, request

from lil.errors import LilError, INVALID
from lil.services import users as user_service
from lil.services.sessions import current_sessions
from lil.utils.decorators import login_required

users_bp = Blueprint('users', __name__)


@users_bp.route('/me', methods=['GET'])
@login_required
def get_current_user():
    """Current user details, including the API key"""
    user = user_service.find_user_by_id(g.user_id)
    return jsonify({'user': user.to_dict(include_sensitive=True)}), 200


@users_bp.route('/me', methods=['PATCH', 'PUT'])
@login_required
def update_current_user():
    """Update name and/or email"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise LilError(INVALID, 'Invalid JSON body')

    name, email = data.get('name'), data.get('email')
    for value in (name, email):
        if value is not None and not isinstance(value, str):
            raise LilError(INVALID, 'Invalid field value.')

    user = user_service.update_user(g.user_id, caller_id=g.user_id, name=name, email=email)
    return jsonify({
        'message': 'Profile updated successfully',
        'user': user.to_dict(),
    }), 200


@users_bp.route('/me', methods=['DELETE'])
@login_required
def delete_current_user():
    """Delete the account with its identities and short links, then log out"""
    user_service.delete_user(g.user_id, caller_id=g.user_id)

    sessions = current_sessions()
    sessions.update(sessions.logout())
    return jsonify({'message': 'Account deleted'}), 200
