from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lil import db
from lil.errors import LilError, CONFLICT, INTERNAL, INVALID, NOT_FOUND, UNAUTHORIZED
from lil.models.user import User
from lil.utils.keygen import generate_api_key
from lil.utils.sanitizers import sanitize_string
from lil.utils.validators import normalize_email


def find_user_by_id(user_id):
    user = db.session.get(User, user_id) if user_id else None
    if user is None:
        raise LilError(NOT_FOUND, 'User not found.')
    return user


def find_users(id=None, email=None, api_key=None, offset=0, limit=0):
    """Return ``(users, total)``; ``total`` ignores offset and limit."""
    query = User.query
    if id is not None:
        query = query.filter(User.id == id)
    if email is not None:
        query = query.filter(User.email == email)
    if api_key is not None:
        query = query.filter(User.api_key == api_key)

    total = query.count()

    query = query.order_by(User.id)
    if offset and offset > 0:
        query = query.offset(offset)
    if limit and limit > 0:
        query = query.limit(limit)
    return query.all(), total


def authenticate_api_key(api_key):
    if not api_key:
        raise LilError(UNAUTHORIZED, 'Invalid API key.')
    users, _ = find_users(api_key=api_key, limit=1)
    if not users:
        raise LilError(UNAUTHORIZED, 'Invalid API key.')
    return users[0]


def create_user(name, email=None):
    """Create a user directly. Users normally appear through an OAuth login."""
    user = User(
        name=sanitize_string(name, max_length=255),
        email=_clean_email(email),
        api_key=generate_api_key(),
    )
    user.validate()
    db.session.add(user)
    _commit('Cannot create user.')
    return user


def update_user(user_id, caller_id, name=None, email=None):
    user = _owned_user(user_id, caller_id)

    try:
        if name is not None:
            user.name = sanitize_string(name, max_length=255)
        if email is not None:
            cleaned = _clean_email(email)
            if cleaned != user.email:
                user.email = cleaned
                user.email_verified = False
        user.validate()
    except LilError:
        db.session.rollback()
        raise
    _commit('Cannot update user.')
    return user


def delete_user(user_id, caller_id):
    """Permanently delete a user, their identities and their short links."""
    user = _owned_user(user_id, caller_id)
    db.session.delete(user)
    _commit('Cannot delete user.')


def _owned_user(user_id, caller_id):
    user = find_user_by_id(user_id)
    if not caller_id or user.id != caller_id:
        raise LilError(UNAUTHORIZED, 'You are only allowed to change your own account.')
    return user


def _clean_email(email):
    if not email:
        return None
    normalized = normalize_email(email)
    if normalized is None:
        raise LilError(INVALID, 'Invalid email format.')
    return normalized


def _commit(message):
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise LilError(CONFLICT, message) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise LilError(INTERNAL, message) from e
