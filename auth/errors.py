"""
auth/errors.py -- Exception taxonomy for the auth core.

  Unauthorized        missing/invalid/expired/tampered token or bad credentials.
                      One message for every cause, so callers cannot tell
                      which check failed.
  InternalError       hashing/signing failure, malformed credential string.
  DatabaseError       any failure surfaced by the record store.
  ConflictError       username or email already taken.
  VerificationFailure a code could not be consumed; reason is one of
                      not_found / already_used / expired and IS surfaced to
                      the caller for purpose-specific messaging.

Each class carries the HTTP status and machine-readable code the API layer
puts in its error envelope, so api/main.py needs a single handler.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class AuthError(Exception):
    """Base class for every error raised by the auth core."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"


class DatabaseError(AuthError):
    status_code = 503
    code = "database_error"
    message = "The record store is unavailable."


class ConflictError(AuthError):
    status_code = 409
    code = "conflict"


class FailureReason(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"


_FAILURE_MESSAGES = {
    FailureReason.NOT_FOUND: "Verification code not found.",
    FailureReason.ALREADY_USED: "Verification code already used.",
    FailureReason.EXPIRED: "Verification code has expired.",
}


class VerificationFailure(AuthError):
    status_code = 400

    def __init__(self, reason: FailureReason) -> None:
        self.reason = reason
        self.code = reason.value
        super().__init__(_FAILURE_MESSAGES[reason])
