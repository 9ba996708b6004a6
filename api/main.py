"""
api/main.py -- FastAPI application entry point for SlateHub.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- method, path, status, latency for every request
  2. authenticate_session  -- SessionAuthenticator attaches request.state.user
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. CORSMiddleware        -- adds CORS headers for allowed browser origins

Lifespan builds every service once from Settings (no module reads the
environment on its own), starts the verification-code cleanup loop, and tears
both down symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.accounts import AccountService
from auth.errors import AuthError, DatabaseError, InternalError
from auth.mailer import LoggingMailer
from auth.middleware import SessionAuthenticator
from auth.store import PersonStore, VerificationCodeStore, make_engine
from auth.tokens import TokenService
from auth.verification import VerificationCodeService
from core.config import Settings, get_settings

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("slatehub.api")


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def build_services(app: FastAPI, settings: Settings, engine) -> None:
    """Construct every auth service and hang it on app.state.

    Shared by the real lifespan and the test lifespan so both wire the app
    identically.
    """
    people = PersonStore(engine)
    codes = VerificationCodeService(VerificationCodeStore(engine))
    tokens = TokenService(settings.secret_key, settings.session_duration_seconds)
    app.state.settings = settings
    app.state.engine = engine
    app.state.people = people
    app.state.codes = codes
    app.state.tokens = tokens
    app.state.mailer = LoggingMailer(reveal_codes=settings.debug)
    app.state.accounts = AccountService(people, codes, tokens, app.state.mailer)
    app.state.authenticator = SessionAuthenticator(tokens, people)


# ---------------------------------------------------------------------------
# Background cleanup task
# ---------------------------------------------------------------------------


async def _cleanup_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired verification codes every interval_seconds.

    The sweep itself is a blocking store call, so it runs in the threadpool.
    A failed sweep is logged and retried on the next tick; CancelledError
    from task.cancel() during shutdown unwinds the loop.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(app.state.codes.cleanup)
        except DatabaseError:
            logger.error("Verification code cleanup failed; will retry in %ds", interval_seconds)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Settings are resolved first: a missing SECRET_KEY outside DEBUG mode
    raises here and the server never starts accepting traffic.
    """
    settings = get_settings()
    logger.info("SlateHub API starting up")
    engine = make_engine(settings.database_url)
    build_services(app, settings, engine)
    logger.info("Auth initialized (session duration %ds)", settings.session_duration_seconds)
    app.state.cleanup_task = asyncio.create_task(_cleanup_loop(app, settings.code_cleanup_interval_seconds))

    yield

    app.state.cleanup_task.cancel()
    engine.dispose()
    logger.info("SlateHub API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SlateHub API",
    description="Accounts, sessions and verification codes for SlateHub.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def authenticate_session(request: Request, call_next):
    """Run SessionAuthenticator. It annotates the request and never rejects it."""
    return await request.app.state.authenticator(request, call_next)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map the auth core's typed errors onto the envelope.

    InternalError keeps its detail in the log only; the client gets the
    generic class message.
    """
    message = exc.message
    if isinstance(exc, InternalError):
        logger.error("Internal auth error on %s %s: %s", request.method, request.url.path, exc.message)
        message = InternalError.message
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=message)).model_dump(),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


def _database_status(engine) -> str:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.error("Health check: database unreachable")
        return "error"
    return "ok"


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, current version, and database reachability."""
    return HealthResponse(
        version=VERSION,
        components={"app": "ok", "database": _database_status(request.app.state.engine)},
    )
