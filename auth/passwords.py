"""
auth/passwords.py -- bcrypt password hashing.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

The work factor is a parameter so the store can take it from settings
(BCRYPT_ROUNDS, default 12) and tests can use the minimum of 4.
"""

from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 12


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Return a bcrypt hash of the given plaintext password with a fresh random salt."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed hash or an
    over-long password is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False
