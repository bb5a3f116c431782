"""OAuth2 authorization-code clients for the supported identity providers.

Each network call is made once, with a timeout. Any failure is reported as an
INTERNAL error; nothing is retried because the code exchange is not
idempotent.
"""
import logging
from datetime import datetime, timedelta
from urllib.parse import urlencode

import requests

from lil.errors import LilError, INTERNAL
from lil.services.identity_linker import Assertion

logger = logging.getLogger(__name__)

GITHUB = 'github'
GOOGLE = 'google'


class OAuthProvider:
    """Base authorization-code client. Subclasses fetch the profile."""

    name = None
    authorize_url = None
    token_url = None
    scopes = ()

    def __init__(self, client_id, client_secret, timeout=10, session=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.http = session or requests.Session()

    def authorization_url(self, state, redirect_uri):
        params = {
            'client_id': self.client_id,
            'redirect_uri': redirect_uri,
            'response_type': 'code',
            'state': state,
        }
        if self.scopes:
            params['scope'] = ' '.join(self.scopes)
        return f'{self.authorize_url}?{urlencode(params)}'

    def exchange(self, code, redirect_uri):
        """Trade an authorization code for provider tokens."""
        data = self._request('POST', self.token_url, data={
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'code': code,
            'grant_type': 'authorization_code',
            'redirect_uri': redirect_uri,
        })

        if data.get('error') or not data.get('access_token'):
            logger.error("%s token exchange rejected: %s", self.name, data.get('error_description') or data.get('error'))
            raise LilError(INTERNAL, f'{self.name} token exchange failed.')

        expiry = None
        if data.get('expires_in'):
            try:
                expiry = datetime.utcnow() + timedelta(seconds=int(data['expires_in']))
            except (TypeError, ValueError):
                expiry = None

        return {
            'access_token': data['access_token'],
            'refresh_token': data.get('refresh_token') or '',
            'expiry': expiry,
        }

    def fetch_assertion(self, tokens):
        raise NotImplementedError

    def _request(self, method, url, access_token=None, **kwargs):
        headers = {'Accept': 'application/json'}
        if access_token:
            headers['Authorization'] = f'Bearer {access_token}'

        try:
            response = self.http.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error("%s request failed: %s %s: %s", self.name, method, url, e)
            raise LilError(INTERNAL, f'Cannot reach {self.name}.') from e
        except ValueError as e:
            logger.error("%s returned a non-JSON body: %s %s", self.name, method, url)
            raise LilError(INTERNAL, f'Unexpected response from {self.name}.') from e


class GitHubProvider(OAuthProvider):
    name = GITHUB
    authorize_url = 'https://github.com/login/oauth/authorize'
    token_url = 'https://github.com/login/oauth/access_token'
    api_url = 'https://api.github.com'
    scopes = ('user:email',)

    def fetch_assertion(self, tokens):
        access_token = tokens['access_token']
        profile = self._request('GET', f'{self.api_url}/user', access_token=access_token)
        if not profile.get('id'):
            raise LilError(INTERNAL, 'User ID not returned by GitHub, cannot authenticate user.')

        # The profile email is whatever the user made public; only an address
        # from /user/emails carries a verification flag.
        email, verified = profile.get('email'), False
        emails = self._request('GET', f'{self.api_url}/user/emails', access_token=access_token)
        for entry in emails if isinstance(emails, list) else []:
            if entry.get('primary') and entry.get('verified'):
                email, verified = entry.get('email'), True
                break

        return Assertion(
            provider=self.name,
            subject=str(profile['id']),
            email=email,
            email_verified=verified,
            name=profile.get('name') or profile.get('login'),
            avatar_url=profile.get('avatar_url'),
            access_token=access_token,
            refresh_token=tokens.get('refresh_token', ''),
            expiry=tokens.get('expiry'),
        )


class GoogleProvider(OAuthProvider):
    name = GOOGLE
    authorize_url = 'https://accounts.google.com/o/oauth2/auth'
    token_url = 'https://oauth2.googleapis.com/token'
    userinfo_url = 'https://www.googleapis.com/oauth2/v2/userinfo'
    scopes = (
        'openid',
        'https://www.googleapis.com/auth/userinfo.email',
        'https://www.googleapis.com/auth/userinfo.profile',
    )

    def fetch_assertion(self, tokens):
        access_token = tokens['access_token']
        info = self._request('GET', self.userinfo_url, access_token=access_token)
        if not info.get('id'):
            raise LilError(INTERNAL, 'User ID not returned by Google, cannot authenticate user.')

        return Assertion(
            provider=self.name,
            subject=str(info['id']),
            email=info.get('email'),
            email_verified=bool(info.get('verified_email')),
            name=info.get('name'),
            avatar_url=info.get('picture'),
            access_token=access_token,
            refresh_token=tokens.get('refresh_token', ''),
            expiry=tokens.get('expiry'),
        )


PROVIDER_CLASSES = {
    GITHUB: GitHubProvider,
    GOOGLE: GoogleProvider,
}


def init_providers(config):
    """Build the providers that have credentials configured."""
    providers = {}
    for name, cls in PROVIDER_CLASSES.items():
        prefix = name.upper()
        client_id = config.get(f'{prefix}_CLIENT_ID')
        client_secret = config.get(f'{prefix}_CLIENT_SECRET')
        if client_id and client_secret:
            providers[name] = cls(client_id, client_secret, timeout=config.get('OAUTH_TIMEOUT', 10))

    if not providers:
        logger.warning("No OAuth provider configured. Nobody will be able to log in.")
    return providers
