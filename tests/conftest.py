"""
tests/conftest.py -- Shared test fixtures for Trailgate.

This module provides:
  - unit fixtures: in-memory UserStore, fast PasswordHasher, TokenService,
    ResetTokenService, RecordingMailer, AuthFlows, AccessGuard
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient against the real app with an isolated store

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
API tests because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

Environment must be set before any api/ or core/ import: DEBUG lets
get_settings() auto-generate SECRET_KEY, PASSWORD_HASH_ROUNDS=4 keeps bcrypt
fast, and the rate limits are raised so the suite never trips them.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("RESET_RATE_LIMIT", "1000/minute")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, install_auth
from auth.flows import AuthFlows
from auth.guards import AccessGuard
from auth.mailer import EmailMessage, MailDeliveryError
from auth.models import User
from auth.passwords import PasswordHasher
from auth.reset_tokens import ResetTokenService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import get_settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"


class RecordingMailer:
    """Mailer double: keeps sent messages in memory, optionally fails."""

    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []
        self.fail = False

    def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise MailDeliveryError("simulated transport failure")
        self.outbox.append(message)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET, ttl_seconds=3600)


@pytest.fixture
def reset_tokens() -> ResetTokenService:
    return ResetTokenService(ttl_minutes=10)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def flows(store, hasher, tokens, reset_tokens, mailer) -> AuthFlows:
    return AuthFlows(store=store, hasher=hasher, tokens=tokens, reset_tokens=reset_tokens, mailer=mailer)


@pytest.fixture
def guard(tokens, store) -> AccessGuard:
    return AccessGuard(tokens, store)


@pytest.fixture
def make_user(store, hasher):
    """Factory: create a persisted user with a known password."""

    def _make(
        email: str = "alice@example.com", password: str = "Secret123!", role: str = "user", name: str = "Alice"
    ) -> User:
        return store.create(User(email=email, name=name, role=role, password_hash=hasher.hash(password)))

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        install_auth(app, get_settings(), user_store, mailer)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_app(request) -> Generator[tuple[TestClient, UserStore, RecordingMailer], None, None]:
    """One TestClient per test module, backed by its own shared-memory DB."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store = UserStore(f"sqlite:///file:test_auth_{suffix}?mode=memory&cache=shared&uri=true")
    mailer = RecordingMailer()
    app.router.lifespan_context = _patch_lifespan(user_store, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, mailer

    user_store.close()


@pytest.fixture
def api_client(api_app) -> tuple[TestClient, UserStore, RecordingMailer]:
    """Per-test view of api_app with an empty cookie jar and outbox.

    Login responses set the credential cookie on the shared client; clearing
    it keeps one test's session from authenticating the next test's requests.
    """
    client, user_store, mailer = api_app
    client.cookies.clear()
    mailer.outbox.clear()
    mailer.fail = False
    return client, user_store, mailer
