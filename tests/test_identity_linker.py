"""Tests for resolving provider assertions to local users."""
from datetime import datetime

import pytest

from lil import db
from lil.errors import LilError, CONFLICT, INVALID
from lil.models import Identity, User
from lil.services import users as user_service
from lil.services.identity_linker import Assertion, IdentityLinker


@pytest.fixture
def linker(app_ctx):
    return IdentityLinker()


def github(subject='123', email='a@x.com', name='A', **kwargs):
    kwargs.setdefault('email_verified', True)
    return Assertion(provider='github', subject=subject, email=email, name=name,
                     access_token=kwargs.pop('access_token', 'gh-token'), **kwargs)


def google(subject='g-1', email='a@x.com', name='A', **kwargs):
    kwargs.setdefault('email_verified', True)
    return Assertion(provider='google', subject=subject, email=email, name=name,
                     access_token=kwargs.pop('access_token', 'google-token'), **kwargs)


class TestNewAccount:

    def test_creates_user_and_identity(self, linker):
        user = linker.resolve(github())

        assert User.query.count() == 1
        assert Identity.query.count() == 1
        assert user.name == 'A'
        assert user.email == 'a@x.com'
        assert user.api_key

        identity = user.identities.one()
        assert identity.provider == 'github'
        assert identity.provider_id == '123'
        assert identity.access_token == 'gh-token'

    def test_name_falls_back_to_email(self, linker):
        user = linker.resolve(github(name=''))
        assert user.name == 'a@x.com'

    def test_name_falls_back_to_provider_subject(self, linker):
        user = linker.resolve(github(name=None, email=None))
        assert user.name == 'github:123'
        assert user.email is None

    def test_name_is_sanitized(self, linker):
        user = linker.resolve(github(name='<b>Bob</b>'))
        assert user.name == 'Bob'

    def test_invalid_email_is_not_stored(self, linker):
        user = linker.resolve(github(email='not an email'))
        assert user.email is None

    @pytest.mark.parametrize('subject', ['', None])
    def test_empty_subject_is_invalid(self, linker, subject):
        with pytest.raises(LilError) as exc:
            linker.resolve(github(subject=subject))
        assert exc.value.code == INVALID
        assert User.query.count() == 0


class TestRelogin:

    def test_same_account_resolves_to_same_user(self, linker):
        first = linker.resolve(github())
        second = linker.resolve(github())

        assert first.id == second.id
        assert User.query.count() == 1
        assert Identity.query.count() == 1

    def test_tokens_are_refreshed(self, linker):
        linker.resolve(github(access_token='old'))
        expiry = datetime(2030, 1, 1)
        linker.resolve(github(access_token='new', refresh_token='refresh', expiry=expiry))

        identity = Identity.query.one()
        assert identity.access_token == 'new'
        assert identity.refresh_token == 'refresh'
        assert identity.expiry == expiry

    def test_changed_email_does_not_matter(self, linker):
        first = linker.resolve(github(email='a@x.com'))
        second = linker.resolve(github(email='other@x.com'))
        assert first.id == second.id


class TestLinking:

    def test_second_provider_links_to_same_user(self, linker):
        first = linker.resolve(github())
        second = linker.resolve(google())

        assert first.id == second.id
        assert User.query.count() == 1
        assert [i.provider for i in second.identities] == ['github', 'google']

    def test_second_account_at_same_provider_conflicts(self, linker):
        user = linker.resolve(github(subject='123', access_token='original'))

        with pytest.raises(LilError) as exc:
            linker.resolve(github(subject='456', access_token='intruder'))
        assert exc.value.code == CONFLICT

        assert User.query.count() == 1
        identity = Identity.query.one()
        assert identity.user_id == user.id
        assert identity.provider_id == '123'
        assert identity.access_token == 'original'

    def test_unverified_email_never_merges(self, linker):
        first = linker.resolve(github())
        second = linker.resolve(google(email_verified=False))

        assert first.id != second.id
        assert User.query.count() == 2
        # The address is still kept on the new account
        assert second.email == 'a@x.com'

    def test_unverified_stored_email_never_receives_a_merge(self, linker):
        squatter = linker.resolve(github(subject='evil', email='victim@x.com', email_verified=False))
        assert squatter.email_verified is False

        owner = linker.resolve(google(subject='v-1', email='victim@x.com'))

        assert owner.id != squatter.id
        assert owner.email_verified is True
        assert squatter.identities.count() == 1

    def test_self_declared_email_never_receives_a_merge(self, linker):
        squatter = user_service.create_user('Mallory')
        user_service.update_user(squatter.id, caller_id=squatter.id, email='victim2@x.com')
        assert squatter.email_verified is False

        owner = linker.resolve(google(subject='v-2', email='victim2@x.com'))

        assert owner.id != squatter.id
        assert squatter.identities.count() == 0

    def test_relogin_with_verified_email_marks_it_verified(self, linker):
        user = linker.resolve(github(email_verified=False))
        assert user.email_verified is False

        linker.resolve(github())
        assert user.email_verified is True

        # Only now does a second provider link to the account
        assert linker.resolve(google()).id == user.id

    def test_unverified_email_merges_when_allowed(self, app_ctx):
        linker = IdentityLinker(require_verified_email=False)
        first = linker.resolve(github(email_verified=False))
        second = linker.resolve(google(email_verified=False))
        assert first.id == second.id

    def test_first_user_with_email_wins(self, linker):
        a = linker.resolve(github(subject='1', email='shared@x.com'))
        b = User(name='B', email='shared@x.com', api_key='b-key')
        db.session.add(b)
        db.session.commit()

        linked = linker.resolve(google(email='shared@x.com'))
        assert linked.id == a.id

    def test_email_lookup_is_normalized(self, linker):
        first = linker.resolve(github(email='a@X.COM'))
        second = linker.resolve(google(email='a@x.com'))
        assert first.id == second.id


class TestConcurrentFirstLogin:

    def test_race_loser_gets_conflict_without_orphans(self, linker, monkeypatch):
        winner = linker.resolve(github(email=None))

        # The loser read the identity table before the winner committed
        monkeypatch.setattr(IdentityLinker, '_find_identity', lambda self, provider, subject: None)
        with pytest.raises(LilError) as exc:
            linker.resolve(github(email=None))
        assert exc.value.code == CONFLICT

        assert User.query.count() == 1
        assert Identity.query.count() == 1

        # Retrying resolves to the identity created by the winner
        monkeypatch.undo()
        assert linker.resolve(github(email=None)).id == winner.id
