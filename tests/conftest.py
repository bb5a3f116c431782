import pytest

from lil import create_app, db
from lil.errors import LilError, INTERNAL
from lil.services.identity_linker import Assertion
from lil.services.oauth import OAuthProvider
from lil.services.sessions import Session

HASH_KEY = 'a1' * 64
BLOCK_KEY = 'b2' * 32


class FakeProvider(OAuthProvider):
    """Provider double: no network, profile taken from ``profile``."""

    name = 'github'
    authorize_url = 'https://provider.example.org/authorize'
    token_url = 'https://provider.example.org/token'

    def __init__(self, subject='123', email='a@x.com', name='A', email_verified=True):
        super().__init__('client-id', 'client-secret')
        self.profile = {
            'subject': subject,
            'email': email,
            'name': name,
            'email_verified': email_verified,
        }
        self.exchanged = []

    def exchange(self, code, redirect_uri):
        self.exchanged.append(code)
        if code == 'provider-down':
            raise LilError(INTERNAL, 'Cannot reach github.')
        return {'access_token': f'token-{code}', 'refresh_token': '', 'expiry': None}

    def fetch_assertion(self, tokens):
        return Assertion(
            provider=self.name,
            subject=self.profile['subject'],
            email=self.profile['email'],
            email_verified=self.profile['email_verified'],
            name=self.profile['name'],
            access_token=tokens['access_token'],
        )


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'RATELIMIT_ENABLED': False,
        'SESSION_HASH_KEY': HASH_KEY,
        'SESSION_BLOCK_KEY': BLOCK_KEY,
        'GITHUB_CLIENT_ID': None,
        'GITHUB_CLIENT_SECRET': None,
        'GOOGLE_CLIENT_ID': None,
        'GOOGLE_CLIENT_SECRET': None,
        'BASE_URL': 'http://lil.localhost',
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def provider(app):
    fake = FakeProvider()
    app.extensions['lil.oauth']['github'] = fake
    return fake


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    from lil.services import users as user_service

    def _make_user(name='Alice', email=None):
        with app.app_context():
            user = user_service.create_user(name, email)
            return user.id, user.api_key
    return _make_user


@pytest.fixture
def login(app, client):
    """Put a session cookie for ``user_id`` on the test client."""
    def _login(user_id, **fields):
        manager = app.extensions['lil.sessions']
        client.set_cookie(manager.cookie_name, manager.encode(Session(user_id=user_id, **fields)))
    return _login


@pytest.fixture
def read_session(app, client):
    def _read_session():
        manager = app.extensions['lil.sessions']
        cookie = client.get_cookie(manager.cookie_name)
        return manager.decode(cookie.value if cookie else '')
    return _read_session
