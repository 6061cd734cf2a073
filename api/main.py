"""
api/main.py -- FastAPI application entry point for Trailgate.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan reads Settings once, builds the UserStore, the Mailer and the auth
components, and stores them on app.state. Nothing in auth/ reads settings on
its own; build_auth() is the only place configuration meets the services.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError
from auth.flows import AuthFlows
from auth.guards import AccessGuard
from auth.mailer import LogMailer, Mailer, SmtpMailer
from auth.passwords import PasswordHasher
from auth.reset_tokens import ResetTokenService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("trailgate.api")

# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthComponents:
    flows: AuthFlows
    guard: AccessGuard


def build_mailer(settings: Settings) -> Mailer:
    if not settings.smtp_host:
        if not settings.debug:
            logger.warning("SMTP_HOST is not set -- reset emails will be written to the log")
        return LogMailer()
    return SmtpMailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        sender=settings.mail_from,
        username=settings.smtp_username,
        password=settings.smtp_password,
        starttls=settings.smtp_starttls,
    )


def build_auth(settings: Settings, user_store: UserStore, mailer: Mailer) -> AuthComponents:
    """Wire the auth services from one immutable settings snapshot."""
    tokens = TokenService(settings.secret_key, settings.token_expire_seconds)
    flows = AuthFlows(
        store=user_store,
        hasher=PasswordHasher(rounds=settings.password_hash_rounds),
        tokens=tokens,
        reset_tokens=ResetTokenService(ttl_minutes=settings.reset_token_expire_minutes),
        mailer=mailer,
    )
    return AuthComponents(flows=flows, guard=AccessGuard(tokens, user_store))


def install_auth(app: FastAPI, settings: Settings, user_store: UserStore, mailer: Mailer) -> None:
    components = build_auth(settings, user_store, mailer)
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.auth_flows = components.flows
    app.state.access_guard = components.guard


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Everything before yield runs on startup; everything after on shutdown."""
    logger.info("Trailgate API starting up")
    settings = get_settings()
    user_store = UserStore(settings.database_url)
    install_auth(app, settings, user_store, build_mailer(settings))
    logger.info(
        "Auth initialized (token_ttl=%ss, reset_ttl=%smin, bcrypt_rounds=%s)",
        settings.token_expire_seconds,
        settings.reset_token_expire_minutes,
        settings.password_hash_rounds,
    )

    yield

    app.state.user_store.close()
    logger.info("Trailgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Trailgate API",
    description="Authentication, session trust and password recovery.",
    version=API_VERSION,
    lifespan=lifespan,
)

_settings = get_settings()

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])

# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves as the same {"error": {...}} envelope; clients branch
# on error.code, never on the status code alone.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a typed auth failure with its own status and code.

    StaleCredential inherits NotAuthenticated's code and message, so the
    response never reveals that a password was changed.
    """
    response = _error(exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit hit on %s from %s", request.url.path, client)
    response = _error(429, "rate_limited", "Too many requests. Please try again later.", str(exc.detail))
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema failures (missing or mistyped fields) are 422; business-rule failures are 400."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Routes raise HTTPException(detail={"code", "message"}); framework 404/405 carry a string.
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback goes to the log, never into the response."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "Something went very wrong.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=API_VERSION)
