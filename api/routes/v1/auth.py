"""
api/routes/v1/auth.py -- Account and session REST endpoints.

Routes:
  POST /api/v1/auth/register                    -- create account; mails confirmation link
  POST /api/v1/auth/confirm-email               -- redeem ACCOUNT_CONFIRMATION link
  POST /api/v1/auth/confirm-email/resend        -- mail a fresh confirmation link
  POST /api/v1/auth/login                       -- password login; sets JWT cookie
  POST /api/v1/auth/logout                      -- clears cookie; 200
  GET  /api/v1/auth/me                          -- current user info (requires auth)
  POST /api/v1/auth/password-reset              -- mail PASSWORD_RESET link
  POST /api/v1/auth/password-reset/confirm      -- redeem link and set new password

Security:
  login, register and both mail-sending endpoints are rate-limited per IP.
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  resend and password-reset answer 202 whether or not the email is registered.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.errors import raise_for_failure
from api.limiter import limiter
from api.models import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetConfirm,
    RegisterRequest,
    RegisterResponse,
    TokenRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from auth.tokens import authenticate_user, create_access_token, set_auth_cookie
from core.config import get_settings
from workflows.accounts import AccountWorkflows

_settings = get_settings()

_LINK_SENT = "If the address is registered, an email with a link is on its way."

# Auth policy:
# - everything except GET /auth/me is public: these endpoints exist to obtain
#   or recover a session.
router = APIRouter()


def _accounts(request: Request) -> AccountWorkflows:
    return request.app.state.accounts


# ---------------------------------------------------------------------------
# Registration and confirmation
# ---------------------------------------------------------------------------


@limiter.limit("5/minute")
@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an unverified account and mail its confirmation link."""
    result = _accounts(request).register(body.name, body.email, body.password)
    raise_for_failure(result)
    registration = result.value
    return RegisterResponse(
        user=UserResponse.from_user(registration.user),
        confirmation_sent=registration.confirmation_sent,
    )


@router.post("/auth/confirm-email", response_model=UserResponse)
def confirm_email(request: Request, body: TokenRequest) -> UserResponse:
    result = _accounts(request).confirm_email(body.token)
    raise_for_failure(result)
    return UserResponse.from_user(result.value)


@limiter.limit("5/minute")
@router.post("/auth/confirm-email/resend", response_model=MessageResponse, status_code=202)
def resend_confirmation(request: Request, body: EmailRequest) -> MessageResponse:
    raise_for_failure(_accounts(request).resend_confirmation(body.email))
    return MessageResponse(message=_LINK_SENT)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@limiter.limit(_settings.login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set JWT cookie.

    Returns the same generic error for an unknown email and a wrong password
    ("bad_credentials") to avoid leaking which addresses are registered.
    """
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user.id, user.name)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=_settings.token_expire_seconds,
            name=user.name,
        ).model_dump(),
    )
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie("access_token")
    return resp


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit("5/minute")
@router.post("/auth/password-reset", response_model=MessageResponse, status_code=202)
def request_password_reset(request: Request, body: EmailRequest) -> MessageResponse:
    raise_for_failure(_accounts(request).request_password_reset(body.email))
    return MessageResponse(message=_LINK_SENT)


@router.post("/auth/password-reset/confirm", response_model=MessageResponse)
def confirm_password_reset(request: Request, body: PasswordResetConfirm) -> MessageResponse:
    """Redeem a PASSWORD_RESET link. An invalid new password leaves the link usable."""
    raise_for_failure(_accounts(request).reset_password(body.token, body.password))
    return MessageResponse(message="Password updated. You can now log in.")
