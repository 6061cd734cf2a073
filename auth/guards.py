"""
auth/guards.py -- The access guard: bearer credential -> fresh principal.

Pattern: Pipeline. Each step takes a frozen AuthContext and returns an
extended copy, or raises an AuthError to short-circuit:

    extract_token -> verify_token -> resolve_principal -> check_freshness

protect() runs the steps and lets the first failure propagate.
identify() runs the same steps but swallows AuthError and returns the input
context unchanged -- for pages that render differently for signed-in
visitors without requiring sign-in.

The context is built from raw header/cookie strings so nothing here depends on
FastAPI; auth/dependencies.py adapts a Request into an AuthContext.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from auth.errors import AuthError, InvalidToken, NotAuthenticated, StaleCredential
from auth.models import User
from auth.store import UserStore
from auth.tokens import TokenClaims, TokenService

logger = logging.getLogger("trailgate.auth.guards")

_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    """Per-request auth state. Only grows, via extend()."""

    authorization: str | None = None
    cookie: str | None = None
    token: str | None = None
    claims: TokenClaims | None = None
    principal: User | None = None

    def extend(self, **changes) -> AuthContext:
        return replace(self, **changes)

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None


Guard = Callable[[AuthContext], AuthContext]


class AccessGuard:
    """Verifies a request's bearer credential and resolves its principal."""

    def __init__(self, tokens: TokenService, store: UserStore) -> None:
        self.tokens = tokens
        self.store = store
        self.steps: Sequence[Guard] = (
            self.extract_token,
            self.verify_token,
            self.resolve_principal,
            self.check_freshness,
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def extract_token(self, ctx: AuthContext) -> AuthContext:
        """Authorization: Bearer header first, then the credential cookie."""
        token: str | None = None
        if ctx.authorization and ctx.authorization.startswith(_BEARER_PREFIX):
            token = ctx.authorization[len(_BEARER_PREFIX):].strip() or None
        if not token and ctx.cookie:
            token = ctx.cookie
        if not token:
            raise NotAuthenticated()
        return ctx.extend(token=token)

    def verify_token(self, ctx: AuthContext) -> AuthContext:
        try:
            claims = self.tokens.verify(ctx.token or "")
        except InvalidToken:
            raise NotAuthenticated() from None
        return ctx.extend(claims=claims)

    def resolve_principal(self, ctx: AuthContext) -> AuthContext:
        """Load the subject. Deleted and deactivated users look like a bad token."""
        if ctx.claims is None:
            raise RuntimeError("resolve_principal() called before verify_token()")
        user = self.store.find_by_id(ctx.claims.subject_id)
        if user is None or not user.active:
            logger.info("Token subject %s not found or inactive", ctx.claims.subject_id)
            raise NotAuthenticated()
        return ctx.extend(principal=user)

    def check_freshness(self, ctx: AuthContext) -> AuthContext:
        """Reject tokens issued before the principal's last password change.

        Tokens are not tracked individually, so this comparison is what makes a
        password change invalidate every previously issued token.
        """
        if ctx.claims is None or ctx.principal is None:
            raise RuntimeError("check_freshness() called before resolve_principal()")
        changed_at = ctx.principal.password_changed_at
        if changed_at is not None and changed_at.timestamp() > ctx.claims.issued_at:
            logger.info("Stale token for user_id=%s (issued before password change)", ctx.principal.id)
            raise StaleCredential()
        return ctx

    # ------------------------------------------------------------------
    # Runners
    # ------------------------------------------------------------------

    def protect(self, ctx: AuthContext) -> AuthContext:
        """Run every step. Raises NotAuthenticated (or StaleCredential) on failure."""
        for step in self.steps:
            ctx = step(ctx)
        return ctx

    def identify(self, ctx: AuthContext) -> AuthContext:
        """Best-effort protect(): any auth failure yields the anonymous context."""
        try:
            return self.protect(ctx)
        except AuthError:
            return ctx
