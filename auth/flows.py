"""
auth/flows.py -- Sign-up, login, password recovery and password change.

AuthFlows orchestrates the primitives (PasswordHasher, TokenService,
ResetTokenService) against the UserStore and Mailer collaborators. Every
public method either returns or raises an AuthError subclass; the API layer
maps those to HTTP responses.

Security decisions:
  Login failure is uniform. Unknown email, wrong password and deactivated
  account all raise InvalidCredentials with the same message, and the
  unknown-email path still runs one bcrypt verification so timing does not
  reveal which emails are registered.

  forgot_password() is uniform too: an unknown email returns normally
  without sending anything, exactly like a known one from the caller's view.

  Any password change (reset or change) writes password_changed_at BEFORE the
  fresh token is issued, so the new token's iat is never earlier than the
  change and every older token fails the access guard's freshness check.

  Nothing is retried. A failed email is reported, never re-sent, to avoid
  duplicate deliveries.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from auth.errors import DeliveryFailed, InvalidCredentials, InvalidOrExpiredToken, ValidationFailed
from auth.mailer import EmailMessage, Mailer, MailDeliveryError
from auth.models import DEFAULT_ROLE, AuthResult, User, without_secrets
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.reset_tokens import ResetTokenService
from auth.store import UserStore, normalize_email
from auth.tokens import TokenService, utcnow

logger = logging.getLogger("trailgate.auth.flows")

MIN_PASSWORD_LENGTH = 8


def _require_id(user: User) -> int:
    if user.id is None:
        raise RuntimeError("operation requires a persisted user")
    return user.id


def validate_new_password(password: str, password_confirm: str) -> None:
    """Raise ValidationFailed unless password is acceptable and confirmed."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    if password != password_confirm:
        raise ValidationFailed("Passwords are not the same.")


class AuthFlows:
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        reset_tokens: ResetTokenService,
        mailer: Mailer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.reset_tokens = reset_tokens
        self.mailer = mailer
        self._clock = clock

    def _issue(self, user: User) -> AuthResult:
        return AuthResult(user=without_secrets(user), token=self.tokens.issue(_require_id(user)))

    # ------------------------------------------------------------------
    # Sign-up / login
    # ------------------------------------------------------------------

    def sign_up(self, name: str, email: str, password: str, password_confirm: str) -> AuthResult:
        """Create a regular user and sign them in.

        The role is always the default; elevated roles are granted by an admin.
        """
        validate_new_password(password, password_confirm)
        user = self.store.create(
            User(
                email=email,
                name=name,
                role=DEFAULT_ROLE,
                password_hash=self.hasher.hash(password),
            )
        )
        logger.info("User signed up: user_id=%s", user.id)
        return self._issue(user)

    def login(self, email: str, password: str) -> AuthResult:
        user = self.store.find_by_email(email, include_password=True)
        if user is None or not user.password_hash:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.dummy_verify(password)
            logger.info("Login failed: unknown email")
            raise InvalidCredentials()
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed: bad password for user_id=%s", user.id)
            raise InvalidCredentials()
        if not user.active:
            logger.info("Login failed: inactive user_id=%s", user.id)
            raise InvalidCredentials()
        return self._issue(user)

    # ------------------------------------------------------------------
    # Password recovery
    # ------------------------------------------------------------------

    def forgot_password(self, email: str, reset_url: Callable[[str], str]) -> None:
        """Email a reset link to email if it belongs to an active account.

        reset_url maps the plaintext token to the link placed in the email.
        Raises DeliveryFailed (after clearing the stored token) if the mailer
        fails; returns None silently for unknown or inactive emails.
        """
        user = self.store.find_by_email(email)
        if user is None or not user.active:
            logger.info("Password reset requested for unknown or inactive email")
            return

        reset = self.reset_tokens.generate()
        user = self.store.save(
            replace(user, reset_token_hash=reset.hashed, reset_token_expires_at=reset.expires_at),
            skip_validation=True,
        )

        message = EmailMessage(
            to=user.email,
            subject=f"Your password reset token (valid for {self.reset_tokens.ttl_minutes} minutes)",
            body=(
                "Forgot your password? Submit a PATCH request with your new password and "
                f"password_confirm to: {reset_url(reset.plaintext)}\n"
                "If you didn't forget your password, please ignore this email!"
            ),
        )
        try:
            self.mailer.send(message)
        except MailDeliveryError:
            logger.warning("Password reset email failed for user_id=%s; clearing reset token", user.id, exc_info=True)
            self.store.save(
                replace(user, reset_token_hash=None, reset_token_expires_at=None),
                skip_validation=True,
            )
            raise DeliveryFailed() from None
        logger.info("Password reset token sent to user_id=%s", user.id)

    def reset_password(self, token: str, password: str, password_confirm: str) -> AuthResult:
        user = self.store.find_by_reset_token(self.reset_tokens.hash(token))
        if user is None or not self.reset_tokens.verify(token, user.reset_token_hash, user.reset_token_expires_at):
            raise InvalidOrExpiredToken()
        if not user.active:
            raise InvalidOrExpiredToken()
        validate_new_password(password, password_confirm)

        user = self.store.save(
            replace(
                user,
                password_hash=self.hasher.hash(password),
                password_changed_at=self._clock(),
                reset_token_hash=None,
                reset_token_expires_at=None,
            )
        )
        logger.info("Password reset for user_id=%s", user.id)
        return self._issue(user)

    # ------------------------------------------------------------------
    # Authenticated operations
    # ------------------------------------------------------------------

    def change_password(
        self, user: User, current_password: str, new_password: str, password_confirm: str
    ) -> AuthResult:
        """Replace the password of an already-authenticated user.

        The current password is re-verified: a hijacked token alone must not
        be enough to lock the real owner out.
        """
        record = self.store.find_by_id(_require_id(user), include_password=True)
        if record is None or not self.hasher.verify(current_password, record.password_hash):
            logger.info("Password change rejected for user_id=%s: bad current password", user.id)
            raise InvalidCredentials()
        validate_new_password(new_password, password_confirm)

        record = self.store.save(
            replace(record, password_hash=self.hasher.hash(new_password), password_changed_at=self._clock())
        )
        logger.info("Password changed for user_id=%s", record.id)
        return self._issue(record)

    def update_profile(self, user: User, **fields) -> User:
        """Update name and/or email. Password fields are refused."""
        user_id = _require_id(user)
        if {"password", "password_confirm"} & set(fields):
            raise ValidationFailed("This route is not for password updates. Please use /update-password.")
        allowed = {k: v for k, v in fields.items() if k in ("name", "email") and v is not None}
        if "email" in allowed:
            allowed["email"] = normalize_email(allowed["email"])
        updated = self.store.update(user_id, **allowed)
        if updated is None:
            raise ValidationFailed("User no longer exists.")
        return without_secrets(updated)

    def deactivate(self, user: User) -> None:
        """Soft-delete: the account can no longer log in or pass the guard."""
        self.store.update(_require_id(user), active=False)
        logger.info("User deactivated: user_id=%s", user.id)
