"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. The validation policy caps passwords at 72
bytes so hash_password() never sees input bcrypt would refuse.
"""

from __future__ import annotations

import logging

import bcrypt

from core.errors import HashingError

logger = logging.getLogger("useraccounts.auth")

DEFAULT_ROUNDS = 12


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises HashingError if bcrypt fails (salt generation or hashing). The
    original exception is logged and chained; the plaintext is not.
    """
    try:
        salt = bcrypt.gensalt(rounds=rounds)
        return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")
    except (ValueError, TypeError, OSError) as exc:
        logger.error("bcrypt hashing failed: %s", type(exc).__name__)
        raise HashingError() from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. Malformed hashes and inputs
    bcrypt refuses count as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False
