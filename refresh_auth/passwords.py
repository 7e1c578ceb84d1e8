"""Salted password hashes for the SQL credential store."""

import hashlib
import secrets
from base64 import b64decode, b64encode
from binascii import Error as Base64Error

SALT_BYTES = 8


def _hash_salt_and_password(salt: bytes, password: str) -> bytes:
    return hashlib.sha256(salt + b'-' + password.encode('utf-8')).digest()


def hash_password(password: str) -> str:
    """Generate a salted hash of a password."""
    salt = secrets.token_bytes(SALT_BYTES)
    hashed = _hash_salt_and_password(salt, password)
    return b64encode(salt + hashed).decode('ascii')


def check_password(password: str, encrypted: str) -> bool:
    """Check a password against a hash from :func:`hash_password`."""
    try:
        decoded = b64decode(encrypted.encode('ascii'), validate=True)
    except (Base64Error, UnicodeEncodeError):
        return False
    salt = decoded[:SALT_BYTES]
    enc_hashed = decoded[SALT_BYTES:]
    return secrets.compare_digest(_hash_salt_and_password(salt, password),
                                  enc_hashed)
