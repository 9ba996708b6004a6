"""
API request and response models for the SlateHub auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
CODE_PATTERN = r"^\d{6}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Identifiers and codes are trimmed; passwords are hashed exactly as sent.
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    username: TrimmedStr = Field(min_length=3, max_length=64, pattern=USERNAME_PATTERN)
    email: TrimmedStr = Field(max_length=320, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=255)
    name: Optional[TrimmedStr] = Field(default=None, max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is a username or an email."""

    identifier: TrimmedStr = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=255)


class EmailVerifyRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-email (requires a session)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(pattern=CODE_PATTERN)


class PasswordResetRequest(BaseModel):
    """Request body for POST /api/v1/auth/password-reset/request."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(max_length=320, pattern=EMAIL_PATTERN)


class PasswordResetConfirm(BaseModel):
    """Request body for POST /api/v1/auth/password-reset/confirm."""

    email: TrimmedStr = Field(max_length=320, pattern=EMAIL_PATTERN)
    code: TrimmedStr = Field(pattern=CODE_PATTERN)
    new_password: str = Field(min_length=8, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """Response for signup and login. The token is also set as the auth_token cookie."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user_id: str
    username: str


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    username: str
    email: str
    name: str
    email_verified: bool


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


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

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
