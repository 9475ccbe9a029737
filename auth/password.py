"""
Password hashing and verification.

Uses bcrypt for password hashing with automatic
salting and configurable work factor.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes; bcrypt>=5 rejects anything longer.
MAX_PASSWORD_BYTES = 72


def password_fits(plaintext: str) -> bool:
    return len(plaintext.encode()) <= MAX_PASSWORD_BYTES


class BcryptHasher:
    """The hashing primitive handed to ``AccountService``."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Hash a password with bcrypt (auto-salted)."""
        return bcrypt.hashpw(plaintext.encode(), bcrypt.gensalt(rounds=self.rounds)).decode()

    def verify(self, plaintext: str, digest: str) -> bool:
        """Constant-time comparison against a bcrypt hash."""
        try:
            return bcrypt.checkpw(plaintext.encode(), digest.encode())
        except (ValueError, TypeError):
            return False
