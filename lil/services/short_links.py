import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lil import db
from lil.errors import LilError, CONFLICT, INTERNAL, INVALID, NOT_FOUND, UNAUTHORIZED
from lil.models.short_link import ShortLink
from lil.models.user import User
from lil.utils import keygen
from lil.utils.validators import validate_url

logger = logging.getLogger(__name__)


class ShortLinkStore:
    """Create, look up and delete short links.

    Keys are random; a key collision on insert is retried with a fresh key up
    to ``max_attempts`` times before giving up with CONFLICT.
    """

    def __init__(self, key_length=keygen.DEFAULT_KEY_LENGTH, alphabet=keygen.DEFAULT_ALPHABET, max_attempts=5):
        if key_length <= 0:
            raise ValueError('key length must be positive')
        if max_attempts <= 0:
            raise ValueError('max attempts must be positive')
        keygen.validate_alphabet(alphabet)

        self.key_length = key_length
        self.alphabet = alphabet
        self.max_attempts = max_attempts

    def create(self, target_url, owner_id):
        url = validate_url(target_url)

        if not owner_id:
            raise LilError(UNAUTHORIZED, 'You must be logged in to create a short.')
        if db.session.get(User, owner_id) is None:
            raise LilError(UNAUTHORIZED, 'You must be logged in to create a short.')

        for attempt in range(1, self.max_attempts + 1):
            short = ShortLink(
                key=keygen.generate_key(self.key_length, self.alphabet),
                url=url,
                owner_id=owner_id,
            )
            db.session.add(short)
            try:
                db.session.commit()
                return short
            except IntegrityError:
                db.session.rollback()
                logger.debug("short key collision: key=%s attempt=%d", short.key, attempt)
            except SQLAlchemyError as e:
                db.session.rollback()
                raise LilError(INTERNAL, 'Cannot create short.') from e

        logger.warning("giving up on short key after %d collisions", self.max_attempts)
        raise LilError(CONFLICT, 'Could not allocate a unique key. Please try again.')

    def find_by_key(self, key):
        """Return the link for ``key`` with its owner loaded."""
        if not key:
            raise LilError(INVALID, 'Missing Key.')

        short = ShortLink.query.filter_by(key=key).first()
        if short is None:
            raise LilError(NOT_FOUND, 'Short not found.')

        if short.owner is None:
            raise LilError(INTERNAL, f'Owner of short {key} not found.')
        return short

    def find(self, key=None, url=None, offset=0, limit=0):
        """Return ``(shorts, total)``.

        ``total`` counts every match, regardless of offset and limit.
        A limit of zero means no limit.
        """
        query = ShortLink.query
        if key is not None:
            query = query.filter(ShortLink.key == key)
        if url is not None:
            query = query.filter(ShortLink.url == url)

        total = query.count()

        query = query.order_by(ShortLink.id)
        if offset and offset > 0:
            query = query.offset(offset)
        if limit and limit > 0:
            query = query.limit(limit)

        return query.all(), total

    def delete(self, key, caller_id):
        """Permanently remove a link. Only its owner may do so."""
        short = self.find_by_key(key)

        if not caller_id or short.owner_id != caller_id:
            raise LilError(UNAUTHORIZED, 'You are not allowed to delete this short.')

        db.session.delete(short)
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise LilError(INTERNAL, 'Cannot delete short.') from e
