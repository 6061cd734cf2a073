"""Unit tests for auth/guards.py -- the access guard pipeline.

Covers each step of protect() (extract, verify, resolve, freshness), the
best-effort identify() variant, and the password-change invalidation
property: tokens issued before a change are stale, tokens issued by it are not.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from auth.errors import NotAuthenticated, StaleCredential
from auth.guards import AccessGuard, AuthContext
from auth.store import UserStore
from auth.tokens import TokenService

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"


def _bearer(token: str) -> AuthContext:
    return AuthContext(authorization=f"Bearer {token}")


class TestProtect:
    def test_bearer_header_resolves_principal(self, guard: AccessGuard, tokens: TokenService, make_user) -> None:
        user = make_user()
        ctx = guard.protect(_bearer(tokens.issue(user.id)))
        assert ctx.is_authenticated
        assert ctx.principal.id == user.id
        assert ctx.principal.password_hash is None

    def test_cookie_fallback(self, guard: AccessGuard, tokens: TokenService, make_user) -> None:
        user = make_user()
        ctx = guard.protect(AuthContext(cookie=tokens.issue(user.id)))
        assert ctx.principal.id == user.id

    def test_header_takes_priority_over_cookie(self, guard: AccessGuard, tokens: TokenService, make_user) -> None:
        alice = make_user()
        bob = make_user(email="bob@example.com", name="Bob")
        ctx = guard.protect(AuthContext(authorization=f"Bearer {tokens.issue(bob.id)}", cookie=tokens.issue(alice.id)))
        assert ctx.principal.id == bob.id

    def test_input_context_is_not_mutated(self, guard: AccessGuard, tokens: TokenService, make_user) -> None:
        user = make_user()
        start = _bearer(tokens.issue(user.id))
        guard.protect(start)
        assert start.principal is None
        assert start.claims is None

    @pytest.mark.parametrize(
        "ctx",
        [
            AuthContext(),
            AuthContext(authorization="Basic dXNlcjpwYXNz"),
            AuthContext(authorization="Bearer "),
            AuthContext(cookie=""),
        ],
    )
    def test_missing_token(self, guard: AccessGuard, ctx: AuthContext) -> None:
        with pytest.raises(NotAuthenticated):
            guard.protect(ctx)

    def test_invalid_token(self, guard: AccessGuard) -> None:
        with pytest.raises(NotAuthenticated):
            guard.protect(_bearer("not-a-token"))

    def test_expired_token(self, guard: AccessGuard, make_user) -> None:
        user = make_user()
        past = datetime.now(timezone.utc) - timedelta(days=2)
        expired = TokenService(TEST_SECRET, ttl_seconds=3600, clock=lambda: past).issue(user.id)
        with pytest.raises(NotAuthenticated):
            guard.protect(_bearer(expired))

    def test_unknown_subject(self, guard: AccessGuard, tokens: TokenService) -> None:
        with pytest.raises(NotAuthenticated) as exc_info:
            guard.protect(_bearer(tokens.issue(9999)))
        assert not isinstance(exc_info.value, StaleCredential)

    def test_deactivated_subject(self, guard: AccessGuard, tokens: TokenService, store: UserStore, make_user) -> None:
        user = make_user()
        token = tokens.issue(user.id)
        store.update(user.id, active=False)
        with pytest.raises(NotAuthenticated):
            guard.protect(_bearer(token))


class TestFreshness:
    def test_token_issued_before_password_change_is_stale(self, guard, tokens, flows, make_user) -> None:
        user = make_user(password="Secret123!")
        old_token = tokens.issue(user.id)

        result = flows.change_password(user, "Secret123!", "NewPass456!", "NewPass456!")

        with pytest.raises(StaleCredential):
            guard.protect(_bearer(old_token))
        assert guard.protect(_bearer(result.token)).principal.id == user.id

    def test_sign_up_then_change_password(self, guard, flows) -> None:
        signed_up = flows.sign_up("Carol", "carol@example.com", "Secret123!", "Secret123!")
        assert guard.protect(_bearer(signed_up.token)).principal.email == "carol@example.com"

        changed = flows.change_password(signed_up.user, "Secret123!", "NewPass456!", "NewPass456!")

        with pytest.raises(NotAuthenticated):
            guard.protect(_bearer(signed_up.token))
        assert guard.protect(_bearer(changed.token)).principal.id == signed_up.user.id

    def test_stale_credential_looks_like_not_authenticated(self) -> None:
        stale, plain = StaleCredential(), NotAuthenticated()
        assert isinstance(stale, NotAuthenticated)
        assert (stale.code, stale.message, stale.status_code) == (plain.code, plain.message, plain.status_code)

    def test_token_issued_after_change_is_fresh(self, guard, store, make_user) -> None:
        user = make_user()
        changed = datetime.now(timezone.utc) - timedelta(minutes=5)
        store.save(replace(store.find_by_id(user.id), password_changed_at=changed))
        later = TokenService(TEST_SECRET, ttl_seconds=3600, clock=lambda: changed + timedelta(seconds=1))
        assert guard.protect(_bearer(later.issue(user.id))).is_authenticated


class TestIdentify:
    def test_anonymous_on_missing_token(self, guard: AccessGuard) -> None:
        ctx = guard.identify(AuthContext())
        assert not ctx.is_authenticated

    def test_anonymous_on_bad_token(self, guard: AccessGuard) -> None:
        ctx = guard.identify(AuthContext(cookie="garbage"))
        assert ctx.principal is None

    def test_anonymous_on_stale_token(self, guard, tokens, flows, make_user) -> None:
        user = make_user(password="Secret123!")
        old_token = tokens.issue(user.id)
        flows.change_password(user, "Secret123!", "NewPass456!", "NewPass456!")
        assert guard.identify(AuthContext(cookie=old_token)).principal is None

    def test_identifies_valid_token(self, guard: AccessGuard, tokens: TokenService, make_user) -> None:
        user = make_user()
        assert guard.identify(AuthContext(cookie=tokens.issue(user.id))).principal.id == user.id


class TestStepOrder:
    def test_freshness_before_resolution_is_a_wiring_error(self, guard: AccessGuard) -> None:
        with pytest.raises(RuntimeError):
            guard.check_freshness(AuthContext(token="x"))

    def test_resolution_before_verification_is_a_wiring_error(self, guard: AccessGuard) -> None:
        with pytest.raises(RuntimeError):
            guard.resolve_principal(AuthContext(token="x"))
