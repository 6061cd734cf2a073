"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Adapts a Starlette Request into an AuthContext and runs the AccessGuard
pipeline (auth/guards.py). Credentials are read from:
  1. Authorization: Bearer <token> header -- API clients.
  2. The credential cookie (default name "jwt") -- set by the login flow.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() raises NotAuthenticated (HTTP 401) if unauthenticated.
restrict_to(roles) builds a dependency that also enforces a role set (403).

Errors are raised as AuthError subclasses; the exception handler in
api/main.py renders them.

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the FastAPI dependency injection system. No imports from api/ or core/.
"""

from __future__ import annotations

from collections.abc import Callable, Set

from fastapi import Depends, Request

from auth.guards import AccessGuard, AuthContext
from auth.models import User
from auth.roles import authorize


def _context_from_request(request: Request) -> AuthContext:
    cookie_name: str = request.app.state.settings.auth_cookie_name
    return AuthContext(
        authorization=request.headers.get("Authorization"),
        cookie=request.cookies.get(cookie_name),
    )


def try_get_current_user(request: Request) -> User | None:
    """Identify the caller if possible. Never raises on auth failure.

    Use for endpoints that respond differently to signed-in visitors but
    are open to everyone.
    """
    guard: AccessGuard = request.app.state.access_guard
    ctx = guard.identify(_context_from_request(request))
    request.state.user = ctx.principal
    return ctx.principal


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    guard: AccessGuard = request.app.state.access_guard
    ctx = guard.protect(_context_from_request(request))
    if ctx.principal is None:
        raise RuntimeError("access guard returned without a principal")
    request.state.user = ctx.principal
    return ctx.principal


def restrict_to(allowed_roles: Set[str]) -> Callable[..., User]:
    """Dependency factory: authenticated user whose role is in allowed_roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(user: User = Depends(restrict_to({"admin"}))): ...
    """
    roles = frozenset(allowed_roles)

    def _dependency(user: User = Depends(get_current_user)) -> User:
        return authorize(user, roles)

    return _dependency
