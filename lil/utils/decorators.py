from functools import wraps
from flask import g, redirect, request

from lil.services.sessions import current_sessions


def login_required(fn):
    """Require an authenticated caller.

    Anonymous callers are sent to the login page. For GET requests the
    current path (without scheme and host) is remembered in their session
    so a successful login redirects back to it.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if g.get('user_id'):
            return fn(*args, **kwargs)

        # Only a GET can be replayed by the post-login redirect
        if request.method == 'GET':
            manager = current_sessions()
            manager.update(manager.remember_redirect(manager.current(), request.full_path.rstrip('?')))
        return redirect('/login', code=302)
    return wrapper
