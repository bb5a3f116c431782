from flask import Blueprint, current_app, g, jsonify

import lil

index_bp = Blueprint('index', __name__)


@index_bp.route('/')
def index():
    user = g.get('user')
    return jsonify({
        'service': 'lil',
        'user': user.to_dict() if user else None,
        'flash': g.get('flash'),
    }), 200


@index_bp.route('/health')
def health_check():
    return {'status': 'healthy', 'service': 'lil'}, 200


@index_bp.route('/debug/version')
def version():
    return lil.__version__, 200, {'Content-Type': 'text/plain'}


@index_bp.route('/debug/commit')
def commit():
    return current_app.config['GIT_COMMIT'], 200, {'Content-Type': 'text/plain'}
