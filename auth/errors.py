"""
auth/errors.py -- Typed failures raised by the auth subsystem.

Every failure a client can observe is an AuthError subclass carrying a stable
machine-readable code, a user-facing message, and the HTTP status the API
layer maps it to. The API exception handler turns these into the standard
{"error": {"code", "message"}} envelope; nothing here imports FastAPI.

StaleCredential subclasses NotAuthenticated and shares its code and message:
clients cannot tell "token predates a password change" from "bad token".
Server logs still see the distinct class.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for client-visible auth failures."""

    code = "auth_error"
    message = "Authentication failed."
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotAuthenticated(AuthError):
    code = "not_authenticated"
    message = "You are not logged in. Please log in to get access."
    status_code = 401


class StaleCredential(NotAuthenticated):
    """Token was issued before the principal's most recent password change."""

    def __init__(self) -> None:
        # Never accept a custom message: the client must see exactly what a
        # plain NotAuthenticated would show.
        super().__init__()


class Forbidden(AuthError):
    code = "forbidden"
    message = "You do not have permission to perform this action."
    status_code = 403


class InvalidCredentials(AuthError):
    code = "bad_credentials"
    message = "Incorrect email or password."
    status_code = 401


class InvalidOrExpiredToken(AuthError):
    code = "invalid_reset_token"
    message = "Token is invalid or has expired."
    status_code = 400


class DeliveryFailed(AuthError):
    code = "delivery_failed"
    message = "There was an error sending the email. Try again later."
    status_code = 500


class ValidationFailed(AuthError):
    code = "validation_error"
    message = "Invalid input."
    status_code = 400


class InvalidToken(Exception):
    """Raised by TokenService.verify for any bad, malformed or expired token.

    Internal only -- the access guard converts it to NotAuthenticated. A single
    type and message for every cause keeps signature and expiry failures
    indistinguishable to callers.
    """

    def __init__(self) -> None:
        super().__init__("Invalid token.")
