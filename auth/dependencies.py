"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

SessionAuthenticator (auth/middleware.py) has already run by the time a route
executes and left a SessionUser or None on request.state.user. These helpers
only read that value; they never touch the token or the store themselves.

try_get_current_user() is the soft variant (returns None).
get_current_user() raises HTTP 401 if the request is anonymous.

auth/dependencies.py may import from fastapi because this module is part of
the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import SessionUser


def try_get_current_user(request: Request) -> SessionUser | None:
    """Return the identity attached by SessionAuthenticator, or None. Never raises."""
    return getattr(request.state, "user", None)


def get_current_user(request: Request) -> SessionUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: SessionUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return user
