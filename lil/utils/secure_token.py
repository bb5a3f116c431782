"""Authenticated, encrypted tokens for client-held session state.

A token is built in three layers:

1. the payload is serialized as compact JSON with sorted keys,
2. it is encrypted with AES-CTR under the block key, behind a version byte
   and a random nonce,
3. the base64 ciphertext is signed with an HMAC (hash key) and a timestamp
   by ``itsdangerous.TimestampSigner``.

Decoding checks the signature and age first and only then decrypts. Every
failure returns ``(None, False)``; callers treat that as "no session".
"""
import binascii
import hashlib
import json
import logging
import os
import secrets

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from itsdangerous import BadData, TimestampSigner
from itsdangerous.encoding import base64_decode, base64_encode

logger = logging.getLogger(__name__)

TOKEN_VERSION = b'\x01'
NONCE_SIZE = 16
DEFAULT_MAX_AGE = 30 * 24 * 60 * 60  # 30 days
HASH_KEY_MIN_SIZE = 32
BLOCK_KEY_SIZES = (16, 24, 32)


class SecureToken:
    """Encode and decode opaque session payloads.

    Both keys are fixed for the lifetime of the codec. Rotating either key
    invalidates every outstanding token.
    """

    def __init__(self, hash_key, block_key, salt='lil-session', max_age=DEFAULT_MAX_AGE):
        if len(hash_key) < HASH_KEY_MIN_SIZE:
            raise ValueError(f'hash key must be at least {HASH_KEY_MIN_SIZE} bytes')
        if len(block_key) not in BLOCK_KEY_SIZES:
            raise ValueError('block key must be 16, 24 or 32 bytes')

        self._block_key = bytes(block_key)
        # SHA-384 digests are a multiple of 3 bytes, so every character of
        # the encoded signature is significant.
        self._signer = TimestampSigner(
            bytes(hash_key), salt=salt, digest_method=hashlib.sha384
        )
        self.max_age = max_age

    def _cipher(self, nonce):
        return Cipher(algorithms.AES(self._block_key), modes.CTR(nonce))

    def encode(self, payload):
        plaintext = json.dumps(payload, sort_keys=True, separators=(',', ':')).encode('utf-8')

        nonce = os.urandom(NONCE_SIZE)
        encryptor = self._cipher(nonce).encryptor()
        ciphertext = encryptor.update(plaintext) + encryptor.finalize()

        value = base64_encode(TOKEN_VERSION + nonce + ciphertext)
        return self._signer.sign(value).decode('ascii')

    def decode(self, token):
        """Return ``(payload, True)`` or ``(None, False)``; never raises."""
        if not token or not isinstance(token, str):
            return None, False

        try:
            value = self._signer.unsign(token, max_age=self.max_age)
            raw = base64_decode(value)
        except (BadData, binascii.Error, ValueError, TypeError):
            return None, False

        if len(raw) <= len(TOKEN_VERSION) + NONCE_SIZE or raw[:1] != TOKEN_VERSION:
            return None, False

        nonce = raw[1:1 + NONCE_SIZE]
        decryptor = self._cipher(nonce).decryptor()
        plaintext = decryptor.update(raw[1 + NONCE_SIZE:]) + decryptor.finalize()

        try:
            payload = json.loads(plaintext.decode('utf-8'))
        except ValueError:
            return None, False

        if not isinstance(payload, dict):
            return None, False
        return payload, True


def _decode_hex_key(name, value):
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        raise ValueError(f'invalid {name}: expected a hex string')


def load_keys(hash_key_hex, block_key_hex, production=False):
    """Decode the configured hex keys.

    Outside production, missing keys are replaced by random ones so the
    service can start; every restart then logs everyone out.
    """
    if not hash_key_hex or not block_key_hex:
        if production:
            raise RuntimeError('SESSION_HASH_KEY and SESSION_BLOCK_KEY are required in production')
        logger.warning("Session keys not configured. Generating ephemeral keys; sessions will not survive a restart.")
        return (
            _decode_hex_key('SESSION_HASH_KEY', hash_key_hex) if hash_key_hex else secrets.token_bytes(64),
            _decode_hex_key('SESSION_BLOCK_KEY', block_key_hex) if block_key_hex else secrets.token_bytes(32),
        )

    return (
        _decode_hex_key('SESSION_HASH_KEY', hash_key_hex),
        _decode_hex_key('SESSION_BLOCK_KEY', block_key_hex),
    )
