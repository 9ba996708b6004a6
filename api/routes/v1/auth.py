"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup                   -- create account; sets session cookies; 201
  POST /api/v1/auth/login                    -- password login; sets session cookies
  POST /api/v1/auth/logout                   -- clears cookies; 200
  GET  /api/v1/auth/me                       -- current identity (requires auth)
  POST /api/v1/auth/verify-email             -- consume email code (requires auth)
  POST /api/v1/auth/verify-email/resend      -- mail a new email code (requires auth)
  POST /api/v1/auth/password-reset/request   -- mail a reset code; always 202
  POST /api/v1/auth/password-reset/confirm   -- consume reset code, set new password

Security:
  POST /login and /password-reset/request are rate-limited per IP.
  AccountService.signin() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on every response that carries a token.

Errors raised by the auth core (AuthError subclasses) are turned into the
standard error envelope by the handler in api/main.py. Verification failures
keep their distinct codes (not_found / already_used / expired).

Handlers are plain `def` so FastAPI runs the blocking store calls in its
threadpool.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    EmailVerifyRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    SessionResponse,
    SignupRequest,
)
from auth.accounts import AccountService
from auth.dependencies import get_current_user
from auth.errors import Unauthorized
from auth.models import Person, SessionUser
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.config import get_settings

# Auth policy:
# - POST /auth/signup, /auth/login, /auth/logout:      public
# - POST /auth/password-reset/request, /confirm:       public (code is the proof)
# - GET  /auth/me:                                     requires auth (get_current_user)
# - POST /auth/verify-email, /auth/verify-email/resend: requires auth (get_current_user)
router = APIRouter()

_login_rate_limit = get_settings().login_rate_limit


def _accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def _session_response(request: Request, person: Person, token: str, status_code: int = 200) -> JSONResponse:
    settings = request.app.state.settings
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- token type, not a password
            expires_in=settings.session_duration_seconds,
            user_id=person.id,
            username=person.username,
        ).model_dump(),
    )
    set_auth_cookie(
        resp,
        token,
        person.username,
        max_age=settings.session_duration_seconds,
        secure=settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=SessionResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account, start a session, and mail an email-verification code."""
    person, token = _accounts(request).signup(body.username, body.email, body.password, name=body.name)
    return _session_response(request, person, token, status_code=201)


@router.post("/auth/login", response_model=SessionResponse)
@limiter.limit(_login_rate_limit)  # brute-force mitigation; the router must register the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username-or-email and password; set session cookies.

    Returns the same generic error for unknown account and wrong password
    ("bad_credentials").
    """
    try:
        person, token = _accounts(request).signin(body.identifier, body.password)
    except Unauthorized:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid username or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _session_response(request, person, token)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the session cookies."""
    resp = JSONResponse(content={"message": "Logged out."})
    clear_auth_cookie(resp)
    return resp


@router.post("/auth/password-reset/request", response_model=MessageResponse, status_code=202)
@limiter.limit(_login_rate_limit)
def request_password_reset(request: Request, body: PasswordResetRequest) -> MessageResponse:
    """Mail a reset code if the account exists. The response never says whether it does."""
    _accounts(request).request_password_reset(body.email)
    return MessageResponse(message="If that email belongs to an account, a reset code has been sent.")


@router.post("/auth/password-reset/confirm", response_model=MessageResponse)
def confirm_password_reset(request: Request, body: PasswordResetConfirm) -> MessageResponse:
    """Consume a password_reset code and replace the account's credential."""
    _accounts(request).reset_password(body.email, body.code, body.new_password)
    return MessageResponse(message="Password updated. Please log in again.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, current_user: SessionUser = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    verified = _accounts(request).people.is_email_verified(current_user.id)
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        email=current_user.email,
        name=current_user.name,
        email_verified=verified,
    )


@router.post("/auth/verify-email", response_model=MessageResponse)
def verify_email(
    request: Request,
    body: EmailVerifyRequest,
    current_user: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    """Consume the current user's email_verification code."""
    _accounts(request).confirm_email(current_user.id, body.code)
    return MessageResponse(message="Email verified.")


@router.post("/auth/verify-email/resend", response_model=MessageResponse)
def resend_email_verification(
    request: Request,
    current_user: SessionUser = Depends(get_current_user),
) -> MessageResponse:
    """Mail a fresh email_verification code, superseding any unused one."""
    if not _accounts(request).resend_email_verification(current_user.id):
        return MessageResponse(message="Email is already verified.")
    return MessageResponse(message="Verification code sent.")
