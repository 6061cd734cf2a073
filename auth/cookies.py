"""
auth/cookies.py -- Credential cookie helpers.

Logout is stateless: tokens are never revoked server-side, so "logging out"
means overwriting the browser's credential cookie with a placeholder that has
already expired. API clients holding the token in memory simply drop it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

LOGGED_OUT = "loggedout"


def set_auth_cookie(response, token: str, *, name: str, max_age: int, secure: bool) -> None:
    """Write the bearer token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    max_age: configured cookie lifetime; defaults to the token TTL.
    """
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_auth_cookie(response, *, name: str, secure: bool) -> None:
    """Overwrite the credential cookie with an already-expired placeholder."""
    response.set_cookie(
        name,
        value=LOGGED_OUT,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=0,
        expires=0,
    )
