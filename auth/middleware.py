"""
auth/middleware.py -- Cookie-based request authentication.

SessionAuthenticator annotates each request with the caller's identity; it
never rejects a request. Per request:

    no auth_token cookie        -> anonymous
    token fails validation      -> anonymous   (logged at debug)
    subject not in directory    -> anonymous   (logged at error: stale token
                                                for a deleted account)
    directory lookup fails      -> anonymous   (logged at error)
    otherwise                   -> SessionUser on request.state.user

Identity comes only from the validated token's subject. The username cookie
is informational; it is compared with the token's username for logging and
never trusted.

The directory lookup is a blocking SQLAlchemy call, so it runs in the
threadpool via run_in_threadpool; a slow store call holds up only its own
request.

Route handlers read the result through auth/dependencies.py.
"""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from auth.errors import DatabaseError, Unauthorized
from auth.models import SessionUser
from auth.store import PersonStore
from auth.tokens import AUTH_COOKIE, USERNAME_COOKIE, TokenService

logger = logging.getLogger("slatehub.auth.middleware")


class SessionAuthenticator:
    def __init__(self, tokens: TokenService, people: PersonStore) -> None:
        self._tokens = tokens
        self._people = people

    async def authenticate(self, request: Request) -> SessionUser | None:
        token = request.cookies.get(AUTH_COOKIE)
        if not token:
            logger.debug("No %s cookie on %s", AUTH_COOKIE, request.url.path)
            return None

        try:
            claims = self._tokens.validate(token)
        except Unauthorized:
            logger.debug("Invalid or expired session token on %s", request.url.path)
            return None

        claimed_username = request.cookies.get(USERNAME_COOKIE)
        if claimed_username and claimed_username != claims.username:
            logger.debug("username cookie %r does not match token subject %s", claimed_username, claims.subject_id)

        try:
            person = await run_in_threadpool(self._people.get_by_id, claims.subject_id)
        except DatabaseError:
            logger.error("Could not look up person %s; continuing unauthenticated", claims.subject_id)
            return None
        if person is None:
            logger.error("Person %s from a valid session token not found", claims.subject_id)
            return None
        return person.to_session_user()

    async def __call__(self, request: Request, call_next):
        """HTTP middleware entry point: attach the identity, then continue."""
        request.state.user = await self.authenticate(request)
        return await call_next(request)
