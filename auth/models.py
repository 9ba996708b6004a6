"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these classes only own the domain shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

PERSON_ID_PREFIX = "person:"


class Purpose(str, Enum):
    """Why a verification code was issued. Values are the stored/wire form."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"

    def __str__(self) -> str:
        return self.value


# Lifetime of a code per purpose, in seconds.
CODE_TTL_SECONDS: dict[Purpose, int] = {
    Purpose.EMAIL_VERIFICATION: 24 * 60 * 60,
    Purpose.PASSWORD_RESET: 60 * 60,
}


@dataclass(frozen=True)
class SessionClaims:
    """Payload carried inside a signed session token.

    Never persisted: the claims live only inside the token string. Timestamps
    are whole seconds since the Unix epoch and expires_at > issued_at.
    """

    subject_id: str
    username: str
    email: str
    issued_at: int
    expires_at: int

    def to_payload(self) -> dict:
        return {
            "sub": self.subject_id,
            "username": self.username,
            "email": self.email,
            "iat": self.issued_at,
            "exp": self.expires_at,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> SessionClaims:
        """Build claims from a decoded JWT payload. Raises KeyError/TypeError/ValueError on bad shape."""
        return cls(
            subject_id=str(payload["sub"]),
            username=str(payload["username"]),
            email=str(payload["email"]),
            issued_at=int(payload["iat"]),
            expires_at=int(payload["exp"]),
        )


@dataclass
class VerificationCode:
    """A short numeric code tied to one subject and one purpose.

    used only ever moves False -> True. expires_at / created_at are epoch
    seconds (float), matching the REAL columns in the store.
    """

    subject_id: str
    code: str
    purpose: Purpose
    expires_at: float
    id: int | None = None
    used: bool = False
    created_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass
class Person:
    """A user-directory record.

    password_hash is an encoded Argon2id credential string. It is replaced
    wholesale on password change, never edited in place.
    verification_status is "unverified" until the email code is confirmed,
    then "email".
    """

    username: str
    email: str
    password_hash: str
    id: str | None = None  # "person:<hex>"
    name: str | None = None
    verification_status: str = "unverified"
    created_at: str | None = None

    @property
    def is_email_verified(self) -> bool:
        return self.verification_status == "email"

    def to_session_user(self) -> SessionUser:
        return SessionUser(
            id=self.id or "",
            username=self.username,
            email=self.email,
            name=self.name or self.username,
        )


@dataclass(frozen=True)
class SessionUser:
    """The identity attached to a request by SessionAuthenticator.

    Excludes the credential and anything else sensitive. Frozen: one identity
    per request, never mutated after it is attached.
    """

    id: str
    username: str
    email: str
    name: str
