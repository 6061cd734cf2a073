"""
API request and response models for Trailgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

UserResponse has no password or reset-token field, so a serialized response
cannot leak them even if a route forgets to strip the domain object.
"""

from enum import Enum
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import AuthResult, User

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    guide = "guide"
    lead_guide = "lead-guide"
    admin = "admin"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

# Names and emails are trimmed. Passwords are never touched: whatever bytes
# reach the hasher on one route must reach it unchanged on every other.
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, min_length=3, max_length=255)]


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup.

    Password length and confirmation are checked by AuthFlows so the error
    surfaces as a validation_error with a readable message.
    """

    name: Name
    email: Email
    password: str = Field(max_length=255)
    password_confirm: str = Field(max_length=255)


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(min_length=1, max_length=255)


class ForgotPasswordRequest(BaseModel):
    email: Email


class ResetPasswordRequest(BaseModel):
    password: str = Field(max_length=255)
    password_confirm: str = Field(max_length=255)


class UpdatePasswordRequest(BaseModel):
    password_current: str = Field(max_length=255)
    password: str = Field(max_length=255)
    password_confirm: str = Field(max_length=255)


class UpdateMeRequest(BaseModel):
    """Request body for PATCH /api/v1/users/me.

    Password fields are accepted by the schema only so the route can reject
    them with a pointed message instead of silently ignoring them.
    """

    name: Optional[Name] = None
    email: Optional[Email] = None
    password: Optional[str] = None
    password_confirm: Optional[str] = None


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id} (admin only)."""

    role: Optional[RoleEnum] = None
    active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a principal."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    active: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            role=user.role,
            active=user.active,
            created_at=user.created_at or "",
        )


class AuthResponse(BaseModel):
    """Returned by every operation that issues a token."""

    model_config = ConfigDict(frozen=True)

    status: Literal["ok"] = "ok"
    token: str
    user: UserResponse

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(token=result.token, user=UserResponse.from_user(result.user))


class StatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["ok"] = "ok"
    message: str


class SessionResponse(BaseModel):
    """Response for GET /api/v1/auth/session -- anonymous callers get user=None."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user: Optional[UserResponse] = None


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
