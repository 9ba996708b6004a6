"""
auth/diagnostics.py -- Offline-only token inspection.

UncheckedTokenDecoder reads session claims WITHOUT checking the signature or
expiry. It exists for the admin CLI (main.py decode-token) to look at tokens
pasted from logs or bug reports.

Layer rule: api/ must never import this module. Request-serving code only
ever sees auth.tokens.TokenService, which has no unchecked pathway.
"""

from __future__ import annotations

from jose import JWTError, jwt

from auth.errors import Unauthorized
from auth.models import SessionClaims


class UncheckedTokenDecoder:
    """Decode session claims while skipping signature and expiry checks."""

    def decode_unchecked(self, token: str) -> SessionClaims:
        try:
            payload = jwt.get_unverified_claims(token)
            return SessionClaims.from_payload(payload)
        except (JWTError, KeyError, TypeError, ValueError) as exc:
            raise Unauthorized(f"Token could not be decoded: {exc}") from exc
