"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/login            -- password login; sets token + auth-status cookies
  POST /api/auth/register         -- create account; optional auto-login
  POST /api/auth/logout           -- clears both cookies; 200
  GET  /api/auth/me               -- current identity, or 401 {authenticated: false}
  POST /api/auth/forgot-password  -- issue a reset token (always 200)
  POST /api/auth/reset-password   -- set a new password with a reset token

Security:
  Login and register are rate-limited per IP (LOGIN_RATE_LIMIT).
  authenticate_account() provides timing equalization -- use it, never inline.
  Wrong email and wrong password produce the same 401 body.
  Cache-Control: no-store on every response that carries a token.
  forgot-password never reveals whether an email is registered.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter, login_rate_limit
from api.models import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MeUser,
    RegisterRequest,
    ResetPasswordRequest,
    SessionUser,
)
from auth.dependencies import resolve_session
from auth.models import Account
from auth.store import AccountStore
from auth.tokens import (
    TokenConfigError,
    authenticate_account,
    clear_auth_cookies,
    create_access_token,
    create_reset_token,
    decode_reset_token,
    hash_password,
    set_auth_cookies,
)
from core.config import get_settings

logger = logging.getLogger("proptrack.api.auth")

# Auth policy:
# - POST /api/auth/login, /register, /forgot-password, /reset-password: public
# - POST /api/auth/logout: public -- clearing cookies needs no prior auth
# - GET  /api/auth/me: resolves the session itself so it can answer 401
#   with {authenticated: false} instead of the generic error body
router = APIRouter()

_GENERIC_RESET_MESSAGE = "If your email exists in our system, you will receive a password reset link shortly."


def _token_response(account: Account, status_code: int = 200) -> JSONResponse:
    """Issue a session token for account and return it in body and cookies.

    Raises TokenConfigError when SECRET_KEY is unset.
    """
    settings = get_settings()
    token = create_access_token(account.id, account.email, account.role)
    resp = JSONResponse(
        status_code=status_code,
        content=LoginResponse(
            token=token,
            expires_in=settings.token_expire_seconds,
            user=SessionUser(id=account.id, email=account.email, role=account.role),
        ).model_dump(),
    )
    set_auth_cookies(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _config_error(exc: TokenConfigError) -> HTTPException:
    logger.error("Cannot issue session token: %s", exc)
    return HTTPException(
        status_code=500,
        detail={"message": "Server configuration error.", "error": "config_error", "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Login / register
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return the token and set cookies.

    Uses authenticate_account() which includes timing equalization. Do NOT
    inline get_by_email() + verify_password() -- that re-introduces the
    timing attack.
    """
    store: AccountStore = request.app.state.account_store
    account = authenticate_account(store, body.email, body.password)
    if account is None:
        resp = JSONResponse(
            status_code=401,
            content={"message": "Invalid email or password.", "error": "bad_credentials"},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    try:
        resp = _token_response(account)
    except TokenConfigError as exc:
        raise _config_error(exc) from exc
    logger.info("Login succeeded for account %d", account.id)
    return resp


@limiter.limit(login_rate_limit)
@router.post("/auth/register")
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account. The email must not already be registered (any case).

    With REGISTER_AUTO_LOGIN=true the response is the same as a login.
    """
    settings = get_settings()
    store: AccountStore = request.app.state.account_store

    account = Account(
        email=body.email,
        hashed_password=hash_password(body.password),
        role=body.role.value if body.role is not None else settings.default_role,
        name=body.name or None,
    )
    try:
        account.id = store.create_account(account)
    except IntegrityError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": "Email already in use.", "error": "email_in_use"},
        ) from exc

    created = store.get_by_id(account.id)
    logger.info("Registered account %d (role=%s)", created.id, created.role)

    if settings.register_auto_login:
        try:
            return _token_response(created)
        except TokenConfigError as exc:
            raise _config_error(exc) from exc

    return JSONResponse(
        content={
            "success": True,
            "message": "User registered successfully.",
            "user": {"id": created.id, "email": created.email, "role": created.role},
        }
    )


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear both auth cookies. Bearer-only clients simply drop their token."""
    resp = JSONResponse(content={"success": True, "message": "Logged out successfully."})
    clear_auth_cookies(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(request: Request) -> JSONResponse:
    """Return identity information for the current session."""
    resolution = resolve_session(request)
    if resolution.identity is None:
        return JSONResponse(
            status_code=401,
            content={"authenticated": False, "message": "Unauthorized", "error": resolution.reason},
        )
    identity = resolution.identity
    return JSONResponse(
        content=MeResponse(
            user=MeUser(user_id=identity.subject_id, email=identity.email, role=identity.role)
        ).model_dump()
    )


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)
@router.post("/auth/forgot-password")
def forgot_password(request: Request, body: ForgotPasswordRequest) -> dict:
    """Issue a one-hour reset token.

    The response is identical for known and unknown emails. No mail is sent;
    in debug mode the token and link are returned so the flow can be
    exercised locally.
    """
    settings = get_settings()
    store: AccountStore = request.app.state.account_store
    result: dict = {"message": _GENERIC_RESET_MESSAGE}

    account = store.get_by_email(body.email)
    if account is None:
        return result

    try:
        reset_token = create_reset_token(account.id)
    except TokenConfigError as exc:
        raise _config_error(exc) from exc
    logger.info("Password reset requested for account %d", account.id)
    if settings.debug:
        result["reset_token"] = reset_token
        result["reset_link"] = f"{settings.app_url.rstrip('/')}/auth/reset-password?token={reset_token}"
    return result


@router.post("/auth/reset-password")
def reset_password(request: Request, body: ResetPasswordRequest) -> dict:
    """Set a new password for the account named by a valid reset token."""
    store: AccountStore = request.app.state.account_store
    account_id = decode_reset_token(body.token)
    if account_id is None:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid or expired token.", "error": "invalid_reset_token"},
        )
    if not store.update_account(account_id, hashed_password=hash_password(body.password)):
        raise HTTPException(
            status_code=404,
            detail={"message": "User not found.", "error": "not_found"},
        )
    logger.info("Password reset completed for account %d", account_id)
    return {"success": True, "message": "Password updated successfully."}
