"""
auth/passwords.py -- bcrypt password hashing.

Bcrypt is the right choice for low-entropy secrets (human passwords) because
its cost factor makes brute-force expensive. The salt and cost are embedded in
every hash, so verify() needs nothing but the stored string.

Passwords longer than 72 bytes cannot be hashed by bcrypt (current releases
raise ValueError). AuthFlows rejects them before hashing; verify() treats
them as a mismatch.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted, slow one-way hashing with a configurable work factor."""

    def __init__(self, rounds: int = 12) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self.rounds = rounds
        # Timing equalization dummy hash. Computed once at construction so
        # the first unknown-user login is not measurably slower than later ones.
        self._dummy_hash = self.hash("trailgate_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of the given plaintext password."""
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if the plaintext matches the hash. Never raises on bad input."""
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def dummy_verify(self, plain: str) -> None:
        """Burn one verification's worth of CPU.

        Called on the unknown-user login path so its response time matches
        the wrong-password path and does not reveal which emails exist.
        """
        self.verify(plain, self._dummy_hash)
