from __future__ import annotations

import hashlib
import hmac
import secrets


SCRYPT_SCHEME = "scrypt"
# Matches Node's crypto.scrypt defaults so existing hashes keep verifying.
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 64
SALT_BYTES = 16


def safe_compare(supplied: str, expected: str) -> bool:
    """Compare two strings in time that depends only on ``expected``.

    A length mismatch still runs a same-cost comparison before answering, so
    response time does not reveal whether the supplied value had the right
    length.
    """
    if not isinstance(supplied, str) or not isinstance(expected, str):
        return False
    supplied_bytes = supplied.encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(supplied_bytes) != len(expected_bytes):
        hmac.compare_digest(expected_bytes, expected_bytes)
        return False
    return hmac.compare_digest(supplied_bytes, expected_bytes)


def _derive(password: str, salt: str) -> str:
    digest = hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_DKLEN,
    )
    return digest.hex()


def hash_password(password: str, salt: str | None = None) -> str:
    """Return ``scrypt:<salt>:<hexdigest>`` for storage."""
    if not isinstance(password, str) or not password:
        raise ValueError("Password must be a non-empty string")
    salt = salt or secrets.token_hex(SALT_BYTES)
    return f"{SCRYPT_SCHEME}:{salt}:{_derive(password, salt)}"


def is_hashed(stored: str) -> bool:
    return isinstance(stored, str) and stored.startswith(f"{SCRYPT_SCHEME}:")


def verify_password(supplied: str, stored: str) -> bool:
    """Check a password against a stored secret.

    ``stored`` is either the scrypt format produced by :func:`hash_password`
    or a deprecated plaintext value, which is compared directly.
    """
    if not isinstance(supplied, str) or not isinstance(stored, str) or not stored:
        return False
    if is_hashed(stored):
        parts = stored.split(":")
        if len(parts) != 3 or not parts[1] or not parts[2]:
            return False
        _, salt, expected = parts
        return safe_compare(_derive(supplied, salt), expected)
    return safe_compare(supplied, stored)
