"""
services/password_hasher.py — bcrypt password hashing.

The raw password is never stored, never logged, never returned.
"""

from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes; truncate the same way on both
# sides so hashing and verification always agree.
_BCRYPT_MAX_BYTES = 72


def _to_bytes(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Adaptive one-way hash with a random per-password salt."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        return bcrypt.hashpw(
            _to_bytes(plaintext),
            bcrypt.gensalt(rounds=self.rounds),
        ).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Constant-time check. A malformed stored hash verifies as False."""
        try:
            return bcrypt.checkpw(_to_bytes(plaintext), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False
