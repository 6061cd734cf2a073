"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST  /api/v1/auth/signup                  -- create account; sets cookie; 201
  POST  /api/v1/auth/login                   -- password login; sets cookie
  POST  /api/v1/auth/logout                  -- overwrite cookie with expired placeholder
  GET   /api/v1/auth/logout                  -- same, for plain links
  POST  /api/v1/auth/forgot-password         -- email a reset link (uniform response)
  PATCH /api/v1/auth/reset-password/{token}  -- set new password from reset token; sets cookie
  PATCH /api/v1/auth/update-password         -- change password (requires auth); sets cookie
  GET   /api/v1/auth/me                      -- current user (requires auth)
  GET   /api/v1/auth/session                 -- current user if any (best-effort)

Security:
  Login, sign-up, forgot-password and reset are rate-limited per IP so the
  bcrypt cost factor cannot be turned into a CPU exhaustion vector.
  Cache-Control: no-store on every response that carries a token.

Handlers are plain `def`: bcrypt and the SQLite store block, and Starlette
runs sync handlers in its threadpool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SessionResponse,
    SignUpRequest,
    StatusResponse,
    UpdatePasswordRequest,
    UserResponse,
)
from auth.cookies import clear_auth_cookie, set_auth_cookie
from auth.dependencies import get_current_user, try_get_current_user
from auth.flows import AuthFlows
from auth.models import AuthResult, User, without_secrets
from core.config import Settings, get_settings

# Auth policy:
# - signup, login, logout, forgot-password, reset-password: public
# - session: public, identifies the caller when it can
# - me, update-password: requires auth (get_current_user)
router = APIRouter()


def _login_limit() -> str:
    return get_settings().login_rate_limit


def _reset_limit() -> str:
    return get_settings().reset_rate_limit


def _token_response(request: Request, result: AuthResult, status_code: int = 200) -> JSONResponse:
    """Serialize an AuthResult, set the credential cookie, forbid caching."""
    settings: Settings = request.app.state.settings
    resp = JSONResponse(status_code=status_code, content=AuthResponse.from_result(result).model_dump())
    set_auth_cookie(
        resp,
        result.token,
        name=settings.auth_cookie_name,
        max_age=settings.cookie_max_age,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
@limiter.limit(_login_limit)
def signup(request: Request, body: SignUpRequest) -> JSONResponse:
    """Create a regular user account and sign it in."""
    flows: AuthFlows = request.app.state.auth_flows
    result = flows.sign_up(body.name, body.email, body.password, body.password_confirm)
    return _token_response(request, result, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_login_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the credential cookie.

    Unknown email and wrong password produce the same bad_credentials error.
    """
    flows: AuthFlows = request.app.state.auth_flows
    return _token_response(request, flows.login(body.email, body.password))


@router.api_route("/auth/logout", methods=["GET", "POST"], response_model=StatusResponse)
async def logout(request: Request) -> JSONResponse:
    """Expire the credential cookie. Issued tokens stay valid until their expiry."""
    settings: Settings = request.app.state.settings
    resp = JSONResponse(content=StatusResponse(message="Logged out.").model_dump())
    clear_auth_cookie(resp, name=settings.auth_cookie_name, secure=settings.secure_cookies)
    return resp


@router.post("/auth/forgot-password", response_model=StatusResponse)
@limiter.limit(_reset_limit)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> StatusResponse:
    """Send a reset link if the email belongs to an account.

    The response is identical whether or not the email is registered.
    """
    settings: Settings = request.app.state.settings
    flows: AuthFlows = request.app.state.auth_flows
    base = settings.public_base_url.rstrip("/")
    flows.forgot_password(body.email, lambda token: f"{base}/api/v1/auth/reset-password/{token}")
    return StatusResponse(message="If that email is registered, a reset link has been sent.")


@router.patch("/auth/reset-password/{token}", response_model=AuthResponse)
@limiter.limit(_reset_limit)
def reset_password(request: Request, token: str, body: ResetPasswordRequest) -> JSONResponse:
    """Set a new password using the emailed reset token, then sign in."""
    flows: AuthFlows = request.app.state.auth_flows
    result = flows.reset_password(token, body.password, body.password_confirm)
    return _token_response(request, result)


@router.get("/auth/session", response_model=SessionResponse)
def session(user: User | None = Depends(try_get_current_user)) -> SessionResponse:
    """Report who the caller is, if anyone. Never returns 401."""
    if user is None:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, user=UserResponse.from_user(without_secrets(user)))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated user."""
    return UserResponse.from_user(without_secrets(current_user))


@router.patch("/auth/update-password", response_model=AuthResponse)
@limiter.limit(_login_limit)
def update_password(
    request: Request,
    body: UpdatePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> JSONResponse:
    """Change password after re-verifying the current one.

    Every token issued before this call stops working; the response carries
    a fresh one.
    """
    flows: AuthFlows = request.app.state.auth_flows
    result = flows.change_password(current_user, body.password_current, body.password, body.password_confirm)
    return _token_response(request, result)
