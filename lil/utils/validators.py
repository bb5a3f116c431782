from urllib.parse import urlsplit

from email_validator import validate_email as email_validator, EmailNotValidError

from lil.errors import LilError, INVALID

ALLOWED_URL_SCHEMES = ('http', 'https')
MAX_URL_LENGTH = 2048


def normalize_email(email):
    """Return the normalized form of ``email``, or None if it is unusable."""
    if not email:
        return None
    try:
        return email_validator(email.strip(), check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def validate_url(url):
    """Check a shortening target and return it stripped.

    Raises an INVALID error for empty URLs, unsupported schemes or
    URLs without a host.
    """
    url = (url or '').strip()
    if not url:
        raise LilError(INVALID, 'Missing URL.')

    if len(url) > MAX_URL_LENGTH:
        raise LilError(INVALID, 'URL is too long.')

    try:
        parts = urlsplit(url)
    except ValueError:
        raise LilError(INVALID, 'Invalid URL passed.')

    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise LilError(INVALID, 'Invalid URL scheme. Only http and https are supported.')

    if not parts.netloc:
        raise LilError(INVALID, 'Invalid URL passed.')

    return url
