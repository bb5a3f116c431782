"""Resolve an external authentication assertion to a local user.

Repeated logins with the same provider account always land on the same user.
A first login from a new provider account is linked to an existing user by
verified email, or creates a new user. Everything happens in one transaction:
either the user and the identity are both written, or neither is.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lil import db
from lil.errors import LilError, CONFLICT, INTERNAL, INVALID
from lil.models.identity import Identity
from lil.models.user import User
from lil.utils.keygen import generate_api_key
from lil.utils.sanitizers import sanitize_string
from lil.utils.validators import normalize_email

logger = logging.getLogger(__name__)


@dataclass
class Assertion:
    """Identity data returned by a provider after a successful OAuth exchange."""
    provider: str
    subject: str
    access_token: str = ''
    refresh_token: str = ''
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    expiry: Optional[datetime] = None
    avatar_url: Optional[str] = None


class IdentityLinker:

    def __init__(self, require_verified_email=True):
        # Only provider-verified addresses link accounts unless this is off
        self.require_verified_email = require_verified_email

    def resolve(self, assertion):
        """Return the user owning ``assertion``, creating or linking as needed.

        Raises INVALID for an empty subject, CONFLICT when the provider is
        already linked to the matched user or a concurrent login won the
        race, and INTERNAL on store failures.
        """
        if not assertion.provider:
            raise LilError(INVALID, 'Missing identity provider.')
        if not assertion.subject:
            raise LilError(INVALID, 'Missing provider subject.')

        try:
            user = self._resolve(assertion)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info("identity race lost: provider=%s subject=%s", assertion.provider, assertion.subject)
            raise LilError(CONFLICT, 'This account is already linked. Please try again.')
        except LilError:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            raise LilError(INTERNAL, 'Cannot resolve identity.') from e

        return user

    def _find_identity(self, provider, subject):
        return Identity.query.filter_by(provider=provider, provider_id=subject).first()

    def _resolve(self, assertion):
        identity = self._find_identity(assertion.provider, assertion.subject)
        email = normalize_email(assertion.email)
        verified = bool(email and assertion.email_verified)

        if identity is not None:
            identity.access_token = assertion.access_token or ''
            identity.refresh_token = assertion.refresh_token or ''
            identity.expiry = assertion.expiry
            if assertion.avatar_url:
                identity.avatar_url = assertion.avatar_url
            user = identity.user
            if verified and user.email == email:
                user.email_verified = True
            return user

        user = None
        if email and (verified or not self.require_verified_email):
            query = User.query.filter_by(email=email)
            if self.require_verified_email:
                # The stored address must have been verified as well
                query = query.filter_by(email_verified=True)
            user = query.order_by(User.id).first()

        if user is not None:
            linked = Identity.query.filter_by(user_id=user.id, provider=assertion.provider).first()
            if linked is not None:
                raise LilError(CONFLICT, f'A {assertion.provider} account is already linked to this user.')
        else:
            user = User(
                name=self._display_name(assertion, email),
                email=email,
                email_verified=verified,
                api_key=generate_api_key(),
            )
            user.validate()
            db.session.add(user)

        db.session.add(Identity(
            user=user,
            provider=assertion.provider,
            provider_id=assertion.subject,
            access_token=assertion.access_token or '',
            refresh_token=assertion.refresh_token or '',
            expiry=assertion.expiry,
            avatar_url=assertion.avatar_url,
        ))
        # Surface unique-constraint violations inside the try block
        db.session.flush()
        return user

    @staticmethod
    def _display_name(assertion, email):
        name = sanitize_string(assertion.name, max_length=255)
        if name:
            return name
        if email:
            return email
        return f'{assertion.provider}:{assertion.subject}'
