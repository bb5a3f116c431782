"""Cryptographically random keys, nonces and API keys."""
import secrets
import string

DEFAULT_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
DEFAULT_KEY_LENGTH = 6


def validate_alphabet(alphabet):
    if not alphabet or len(alphabet) < 2:
        raise ValueError('alphabet must contain at least two symbols')
    if len(set(alphabet)) != len(alphabet):
        raise ValueError('alphabet must not contain duplicate symbols')


def generate_key(length=DEFAULT_KEY_LENGTH, alphabet=DEFAULT_ALPHABET):
    """Draw ``length`` symbols uniformly from ``alphabet``.

    ``secrets.choice`` rejection-samples from the OS CSPRNG, so every symbol
    is equally likely whatever the alphabet size.
    """
    if length <= 0:
        raise ValueError('key length must be positive')
    validate_alphabet(alphabet)
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def generate_nonce(nbytes=64):
    """Hex-encoded random bytes for OAuth state."""
    return secrets.token_hex(nbytes)


def generate_api_key():
    return secrets.token_hex(32)
