"""Tests for the GitHub and Google clients with a stubbed HTTP session."""
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from lil.errors import LilError, INTERNAL
from lil.services.oauth import GitHubProvider, GoogleProvider, init_providers


def http_stub(*payloads, error=None):
    """A requests.Session double returning ``payloads`` in order."""
    session = MagicMock()
    responses = []
    for payload in payloads:
        response = MagicMock()
        response.json.return_value = payload
        response.raise_for_status.return_value = None
        responses.append(response)
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.side_effect = responses
    return session


class TestAuthorizationUrl:

    def test_github(self):
        provider = GitHubProvider('id', 'secret')
        url = provider.authorization_url('st4te', 'http://lil.localhost/oauth/github/callback')
        parts = urlsplit(url)
        params = parse_qs(parts.query)
        assert parts.netloc == 'github.com'
        assert params['state'] == ['st4te']
        assert params['client_id'] == ['id']
        assert params['scope'] == ['user:email']

    def test_google_scopes(self):
        url = GoogleProvider('id', 'secret').authorization_url('s', 'http://cb')
        assert 'openid' in parse_qs(urlsplit(url).query)['scope'][0]


class TestExchange:

    def test_tokens_and_expiry(self):
        http = http_stub({'access_token': 'at', 'refresh_token': 'rt', 'expires_in': 3600})
        tokens = GoogleProvider('id', 'secret', session=http).exchange('code', 'http://cb')
        assert tokens['access_token'] == 'at'
        assert tokens['refresh_token'] == 'rt'
        assert tokens['expiry'] is not None

        _, kwargs = http.request.call_args
        assert kwargs['data']['code'] == 'code'
        assert kwargs['timeout'] == 10

    def test_error_payload(self):
        http = http_stub({'error': 'bad_verification_code'})
        with pytest.raises(LilError) as exc:
            GitHubProvider('id', 'secret', session=http).exchange('code', 'http://cb')
        assert exc.value.code == INTERNAL

    def test_network_failure_is_not_retried(self):
        http = http_stub(error=requests.exceptions.Timeout('slow'))
        with pytest.raises(LilError) as exc:
            GitHubProvider('id', 'secret', session=http).exchange('code', 'http://cb')
        assert exc.value.code == INTERNAL
        assert http.request.call_count == 1


class TestProfiles:

    def test_github_prefers_verified_primary_email(self):
        http = http_stub(
            {'id': 99, 'login': 'octo', 'name': None, 'email': 'public@x.com',
             'avatar_url': 'https://avatars.example.com/u/99'},
            [
                {'email': 'old@x.com', 'primary': False, 'verified': True},
                {'email': 'main@x.com', 'primary': True, 'verified': True},
            ],
        )
        assertion = GitHubProvider('id', 'secret', session=http).fetch_assertion({'access_token': 'at'})
        assert assertion.provider == 'github'
        assert assertion.subject == '99'
        assert assertion.name == 'octo'
        assert assertion.email == 'main@x.com'
        assert assertion.email_verified is True
        assert assertion.avatar_url == 'https://avatars.example.com/u/99'

    def test_github_public_email_is_unverified(self):
        http = http_stub(
            {'id': 99, 'login': 'octo', 'name': 'Octo', 'email': 'public@x.com'},
            [],
        )
        assertion = GitHubProvider('id', 'secret', session=http).fetch_assertion({'access_token': 'at'})
        assert assertion.email == 'public@x.com'
        assert assertion.email_verified is False

    def test_github_missing_id(self):
        http = http_stub({'login': 'ghost'})
        with pytest.raises(LilError) as exc:
            GitHubProvider('id', 'secret', session=http).fetch_assertion({'access_token': 'at'})
        assert exc.value.code == INTERNAL

    def test_google(self):
        http = http_stub({'id': '1078', 'email': 'g@x.com', 'verified_email': True, 'name': 'G',
                          'picture': 'https://lh3.example.com/g.png'})
        assertion = GoogleProvider('id', 'secret', session=http).fetch_assertion(
            {'access_token': 'at', 'refresh_token': 'rt', 'expiry': None}
        )
        assert assertion.provider == 'google'
        assert assertion.subject == '1078'
        assert assertion.email_verified is True
        assert assertion.refresh_token == 'rt'
        assert assertion.avatar_url == 'https://lh3.example.com/g.png'

    def test_non_json_response(self):
        http = MagicMock()
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.side_effect = ValueError('not json')
        http.request.return_value = response
        with pytest.raises(LilError) as exc:
            GoogleProvider('id', 'secret', session=http).fetch_assertion({'access_token': 'at'})
        assert exc.value.code == INTERNAL


def test_only_configured_providers_are_registered():
    providers = init_providers({
        'GITHUB_CLIENT_ID': 'id',
        'GITHUB_CLIENT_SECRET': 'secret',
        'GOOGLE_CLIENT_ID': 'id',
        'OAUTH_TIMEOUT': 3,
    })
    assert list(providers) == ['github']
    assert providers['github'].timeout == 3
