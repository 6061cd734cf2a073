"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and flows do
the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

ROLES: frozenset[str] = frozenset({"user", "guide", "lead-guide", "admin"})
DEFAULT_ROLE = "user"


@dataclass
class User:
    """The principal: an identity record representing one user.

    password_hash is None whenever the record was read without
    include_password=True -- the store excludes it from default reads.

    password_changed_at is set only on explicit password changes and resets.
    Tokens whose iat predates it are rejected as stale.

    reset_token_hash / reset_token_expires_at hold the SHA-256 of an
    outstanding password reset token and its expiry. The plaintext token is
    never stored.
    """

    email: str
    name: str
    role: str = DEFAULT_ROLE
    id: int | None = None
    password_hash: str | None = None
    password_changed_at: datetime | None = None
    reset_token_hash: str | None = None
    reset_token_expires_at: datetime | None = None
    active: bool = True
    created_at: str | None = None


def without_secrets(user: User) -> User:
    """Return a copy of user safe to hand back to callers."""
    return replace(user, password_hash=None, reset_token_hash=None, reset_token_expires_at=None)


@dataclass(frozen=True)
class AuthResult:
    """A principal (secrets stripped) plus the bearer token just issued for it."""

    user: User
    token: str
