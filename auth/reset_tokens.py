"""
auth/reset_tokens.py -- Single-use password reset secrets.

secrets.token_hex(32) gives 256 bits of entropy, so brute-force is
computationally infeasible. The store keeps only SHA-256(plaintext): a fast,
deterministic hash is enough for a high-entropy secret and lets the reset
lookup be a single indexed equality query. bcrypt's intentional slowness is
reserved for human-chosen passwords.

The plaintext is returned exactly once, from generate(), for out-of-band
delivery. It cannot be recovered from anything persisted.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.tokens import utcnow


@dataclass(frozen=True)
class ResetToken:
    plaintext: str
    hashed: str
    expires_at: datetime


class ResetTokenService:
    def __init__(self, ttl_minutes: int = 10, clock: Callable[[], datetime] = utcnow) -> None:
        if ttl_minutes <= 0:
            raise ValueError("reset token TTL must be positive")
        self.ttl_minutes = ttl_minutes
        self._clock = clock

    @staticmethod
    def hash(plaintext: str) -> str:
        """Return the SHA-256 hex digest stored in place of the plaintext."""
        return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()

    def generate(self) -> ResetToken:
        plaintext = secrets.token_hex(32)
        return ResetToken(
            plaintext=plaintext,
            hashed=self.hash(plaintext),
            expires_at=self._clock() + timedelta(minutes=self.ttl_minutes),
        )

    def verify(self, plaintext: str, stored_hash: str | None, stored_expiry: datetime | None) -> bool:
        """Return True only for a matching, unexpired token."""
        if not plaintext or not stored_hash or stored_expiry is None:
            return False
        if self._clock() > stored_expiry:
            return False
        return hmac.compare_digest(self.hash(plaintext), stored_hash)
