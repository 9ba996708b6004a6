"""
auth/tokens.py -- Session token issuance/validation and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (person id), username, email,
       iat and exp as whole epoch seconds. validate() raises Unauthorized for
       every failure -- bad signature, malformed token, missing claims,
       expiry -- with one message, so a caller cannot tell an expired token
       from a tampered one. The actual cause is logged at debug level only.

  Expiry: checked here against the injected clock (exp must be strictly in
       the future) instead of python-jose's wall-clock check, so tests and
       offline tools share one notion of "now". Only verify_exp is switched
       off: python-jose re-enables verify_<claim> for every require_<claim>
       option (require_exp would bring back the wall-clock check), and
       SessionClaims.from_payload already rejects a payload without sub or
       exp.

  SECRET_KEY: passed in by the caller, normally from core.config.Settings.
       TokenService refuses an empty secret; Settings refuses to start without
       one outside DEBUG mode.

  The signature-skipping decoder lives in auth/diagnostics.py, not here, so
  nothing that imports the request-serving token code can reach it.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from jose import JWTError, jwt

from auth.errors import InternalError, Unauthorized
from auth.models import SessionClaims

logger = logging.getLogger("slatehub.auth.tokens")

ALGORITHM = "HS256"
DEFAULT_DURATION_SECONDS = 43200  # 12 hours

AUTH_COOKIE = "auth_token"
USERNAME_COOKIE = "username"


class TokenService:
    """Issue and validate signed session tokens.

    Usage:
        tokens = TokenService(settings.secret_key, settings.session_duration_seconds)
        token = tokens.issue("person:abc123", "chris", "chris@example.com")
        claims = tokens.validate(token)
    """

    def __init__(
        self,
        secret_key: str,
        duration_seconds: int = DEFAULT_DURATION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        if duration_seconds <= 0:
            raise ValueError("Session duration must be positive.")
        self._secret_key = secret_key
        self.duration_seconds = duration_seconds
        self._clock = clock

    def issue(self, subject_id: str, username: str, email: str) -> str:
        now = int(self._clock())
        claims = SessionClaims(
            subject_id=subject_id,
            username=username,
            email=email,
            issued_at=now,
            expires_at=now + self.duration_seconds,
        )
        try:
            return jwt.encode(claims.to_payload(), self._secret_key, algorithm=ALGORITHM)
        except JWTError as exc:
            raise InternalError(f"Failed to create session token: {exc}") from exc

    def validate(self, token: str) -> SessionClaims:
        """Verify signature and expiry; return the claims or raise Unauthorized."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
            claims = SessionClaims.from_payload(payload)
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            logger.debug("Session token rejected: %s", exc)
            raise Unauthorized() from None
        if claims.expires_at <= self._clock():
            logger.debug("Session token for %s expired at %d", claims.subject_id, claims.expires_at)
            raise Unauthorized()
        return claims


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, username: str, max_age: int, secure: bool = False) -> None:
    """Write the session token (httpOnly) and the display username cookie.

    httponly=True: JS cannot read the token cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    max_age: matches the token duration so both expire together.

    The username cookie is informational only (page chrome before the first
    authenticated request); identity is never derived from it.
    """
    response.set_cookie(
        AUTH_COOKIE,
        value=token,
        path="/",
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
    response.set_cookie(
        USERNAME_COOKIE,
        value=username,
        path="/",
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_auth_cookie(response) -> None:
    response.delete_cookie(AUTH_COOKIE, path="/")
    response.delete_cookie(USERNAME_COOKIE, path="/")
