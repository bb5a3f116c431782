"""Client-held session state and the login state machine.

The session is a small record (user id, pending OAuth state, deferred
redirect) encoded with ``SecureToken`` into a cookie. There is no server-side
session table: logging out resets the cookie, and rotating the codec keys
logs everyone out.

States::

    Anonymous      user_id == 0, state == ''
    PendingOAuth   state != ''
    Authenticated  user_id != 0
"""
import hmac
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from flask import current_app, g, request

from lil.errors import LilError, INVALID
from lil.utils.keygen import generate_nonce

logger = logging.getLogger(__name__)

SESSION_LIFETIME = timedelta(days=30)


@dataclass(frozen=True)
class Session:
    user_id: int = 0
    redirect_url: str = ''
    state: str = ''

    @property
    def authenticated(self):
        return self.user_id != 0

    def to_dict(self):
        return {'user_id': self.user_id, 'redirect_url': self.redirect_url, 'state': self.state}

    @classmethod
    def from_dict(cls, data):
        """Build a session from a decoded payload; malformed payloads are anonymous."""
        user_id = data.get('user_id', 0)
        redirect_url = data.get('redirect_url', '')
        state = data.get('state', '')
        if (not isinstance(user_id, int) or isinstance(user_id, bool) or user_id < 0
                or not isinstance(redirect_url, str) or not isinstance(state, str)):
            return cls()
        return cls(user_id=user_id, redirect_url=redirect_url, state=state)

    def consumed(self):
        """Drop the OAuth state and deferred redirect; both are single-use."""
        return replace(self, state='', redirect_url='')


class SessionManager:

    def __init__(self, codec, cookie_name='lil_session', lifetime=SESSION_LIFETIME):
        self.codec = codec
        self.cookie_name = cookie_name
        self.lifetime = lifetime

    def init_app(self, app):
        app.extensions['lil.sessions'] = self
        app.before_request(self._load)
        app.after_request(self._save)

    # Token encoding

    def decode(self, token):
        payload, ok = self.codec.decode(token)
        if not ok:
            return Session()
        return Session.from_dict(payload)

    def encode(self, session):
        return self.codec.encode(session.to_dict())

    # State transitions

    def begin_login(self, session):
        """Anonymous|Authenticated -> PendingOAuth with a fresh nonce."""
        return replace(session, state=generate_nonce())

    def remember_redirect(self, session, path):
        """Record where to send the user once logged in."""
        return replace(session, redirect_url=path)

    def logout(self):
        """Authenticated -> Anonymous: the zero value."""
        return Session()

    def authenticate(self, session, user_id):
        return replace(session.consumed(), user_id=user_id)

    def verify_state(self, session, state):
        if not session.state or not state:
            return False
        return hmac.compare_digest(session.state.encode('utf-8'), state.encode('utf-8'))

    def complete_login(self, session, provider, state, code, linker, redirect_uri):
        """PendingOAuth -> Authenticated.

        Checks the returned state against the stored nonce, exchanges the
        code, fetches the profile and resolves it to a local user. The
        network calls happen before the linker opens its transaction.
        Returns the resolved user; the caller stores the new session.
        """
        if not self.verify_state(session, state):
            raise LilError(INVALID, 'OAuth state mismatch.')
        if not code:
            raise LilError(INVALID, 'Missing authorization code.')

        tokens = provider.exchange(code, redirect_uri)
        assertion = provider.fetch_assertion(tokens)
        return linker.resolve(assertion)

    # Request glue

    def current(self):
        return g.get('session') or Session()

    def update(self, session):
        g.session = session
        g.session_dirty = True

    def _load(self):
        token = request.cookies.get(self.cookie_name)
        g.session = self.decode(token) if token else Session()
        g.session_dirty = False

    def _save(self, response):
        if not g.get('session_dirty'):
            return response

        response.set_cookie(
            self.cookie_name,
            self.encode(g.session),
            path='/',
            expires=datetime.utcnow() + self.lifetime,
            secure=request.is_secure,
            httponly=True,
            samesite='Lax',
        )
        return response


def current_sessions():
    return current_app.extensions['lil.sessions']
