"""
auth/tokens.py -- JWT bearer token issue and verification.

Security design decisions:
  python-jose with HS256. Tokens carry only the subject id ("sub"), the issue
  time ("iat") and the expiry ("exp"). Role and other attributes are read
  from the store on every request so a role change takes effect immediately.

  "iat" is a float with sub-second precision. The access guard compares it to
  User.password_changed_at; whole seconds would let a token issued moments
  before a password change in the same second survive the change.

  Verification raises a single InvalidToken for every failure cause (bad
  signature, malformed, expired, missing claims). Callers cannot build an
  oracle that tells "expired" apart from "forged".

  The secret is injected at construction and never logged.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import InvalidToken

logger = logging.getLogger("trailgate.auth.tokens")

_ALGORITHM = "HS256"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenClaims:
    subject_id: int
    issued_at: float  # POSIX seconds
    expires_at: float


class TokenService:
    """Issues and verifies signed, time-limited bearer tokens."""

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key")
        if ttl_seconds <= 0:
            raise ValueError("token TTL must be positive")
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def __repr__(self) -> str:
        return f"TokenService(ttl_seconds={self.ttl_seconds})"

    def issue(self, subject_id: int) -> str:
        """Encode a signed JWT for subject_id, valid for the configured TTL."""
        now = self._clock()
        expire = now + timedelta(seconds=self.ttl_seconds)
        payload = {
            "sub": str(subject_id),
            "iat": now.timestamp(),
            "exp": int(expire.timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT. Raises InvalidToken on any failure."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
            return TokenClaims(
                subject_id=int(payload["sub"]),
                issued_at=float(payload["iat"]),
                expires_at=float(payload["exp"]),
            )
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            logger.debug("Token rejected: %s", type(exc).__name__)
            raise InvalidToken() from None
