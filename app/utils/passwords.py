"""Password hashing with PBKDF2-HMAC-SHA256.

Hashes are self-describing strings so the iteration count can be raised
later without invalidating existing users:

    pbkdf2_sha256$<rounds>$<salt_b64>$<hash_b64>
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import os

ALGORITHM = "pbkdf2_sha256"
SALT_BYTES = 16


def _pbkdf2(password: str, *, salt: bytes, rounds: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)


def hash_password(password: str, *, rounds: int = 200_000) -> str:
    """Hash ``password`` with a fresh random salt."""
    salt = os.urandom(SALT_BYTES)
    digest = _pbkdf2(password, salt=salt, rounds=rounds)
    return f"{ALGORITHM}${rounds}${base64.b64encode(salt).decode()}${base64.b64encode(digest).decode()}"


def verify_password(password: str, encoded: str) -> bool:
    """Check ``password`` against an encoded hash in constant time.

    Malformed or foreign hashes verify as False instead of raising.
    """
    try:
        algo, rounds_s, salt_b64, hash_b64 = encoded.split("$", 3)
        rounds = int(rounds_s)
        salt = base64.b64decode(salt_b64, validate=True)
        expected = base64.b64decode(hash_b64, validate=True)
    except (ValueError, binascii.Error):
        return False
    if algo != ALGORITHM or rounds < 1:
        return False

    digest = _pbkdf2(password, salt=salt, rounds=rounds)
    return hmac.compare_digest(digest, expected)
