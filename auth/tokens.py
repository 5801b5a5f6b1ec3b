"""
auth/tokens.py -- Session token codec, password hashing, and cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Session tokens are signed with SECRET_KEY and
       carry sub (account id), email, role and expiry. Verification returns
       None on any failure -- the route layer turns that into a 401. The reason
       is logged, never echoed to the client.

  Passwords: bcrypt with a configurable work factor (BCRYPT_ROUNDS). The
       _DUMMY_HASH constant enables timing equalization in
       authenticate_account() so response time does not reveal whether an
       email is registered.

  Reset tokens: same signing key, one hour expiry, purpose=password_reset.
       They carry no email/role, so decode_access_token() rejects them; the
       purpose check makes decode_reset_token() reject session tokens.

  SECRET_KEY: sourced from core.config.get_settings(). Settings refuses to
       start in production without one; create_access_token() still checks and
       raises TokenConfigError if it is empty.

Layer rule: no imports from api/, web/, tracker/ or client/. Import from core/
is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import ROLES, SessionIdentity
from core.config import get_settings
from core.constants import SESSION_COOKIE, STATUS_COOKIE, STATUS_COOKIE_VALUE

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore

logger = logging.getLogger("proptrack.auth")

_settings = get_settings()

_ALGORITHM = "HS256"
_RESET_PURPOSE = "password_reset"


class TokenConfigError(RuntimeError):
    """Raised when a token cannot be issued because the signing secret is unset."""


def _signing_key() -> str:
    if not _settings.secret_key:
        raise TokenConfigError("SECRET_KEY is not configured")
    return _settings.secret_key


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt truncates input at 72 bytes. The API layer caps passwords at 72
    characters (request models), which keeps ASCII input below the limit.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("proptrack_timing_dummy")


def authenticate_account(store: AccountStore, email: str, password: str) -> Optional[Account]:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the Account on success, None on any failure.
    """
    account = store.get_by_email(email)
    if account is None:
        # Do NOT return before running bcrypt.
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, account.hashed_password):
        return None
    return account


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def create_access_token(subject_id: int, email: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed session token.

    Args:
        subject_id:     Account id, stored as the string "sub" claim.
        email:          Account email at issue time.
        role:           "operator" or "observer".
        expire_seconds: Lifetime in seconds. 0 (default) uses
                        Settings.token_expire_seconds.

    Raises:
        TokenConfigError: the signing secret is unset.
    """
    key = _signing_key()
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    payload = {
        "sub": str(subject_id),
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=duration),
    }
    return jwt.encode(payload, key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> Optional[SessionIdentity]:
    """Verify a session token. Returns the identity or None on any failure.

    None covers: bad signature, expiry, malformed input, a missing sub/email/
    role claim, a non-numeric sub and an unknown role. Never raises.
    """
    if not _settings.secret_key:
        logger.error("Token verification skipped: SECRET_KEY is not configured")
        return None
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except ExpiredSignatureError:
        logger.info("Token rejected: expired")
        return None
    except JWTError as exc:
        logger.info("Token rejected: %s", type(exc).__name__)
        return None

    sub, email, role = payload.get("sub"), payload.get("email"), payload.get("role")
    if not sub or not email or not role:
        logger.info("Token rejected: missing required claims")
        return None
    if role not in ROLES:
        logger.info("Token rejected: unknown role")
        return None
    try:
        subject_id = int(sub)
    except (TypeError, ValueError):
        logger.info("Token rejected: malformed subject")
        return None
    return SessionIdentity(subject_id=subject_id, email=email, role=role)


# ---------------------------------------------------------------------------
# Password reset tokens
# ---------------------------------------------------------------------------


def create_reset_token(account_id: int) -> str:
    """Encode a short-lived password reset token for account_id."""
    payload = {
        "sub": str(account_id),
        "purpose": _RESET_PURPOSE,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=_settings.reset_token_expire_seconds),
    }
    return jwt.encode(payload, _signing_key(), algorithm=_ALGORITHM)


def decode_reset_token(token: str) -> Optional[int]:
    """Return the account id from a valid reset token, or None."""
    if not _settings.secret_key:
        return None
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError as exc:
        logger.info("Reset token rejected: %s", type(exc).__name__)
        return None
    if payload.get("purpose") != _RESET_PURPOSE:
        logger.info("Reset token rejected: wrong purpose")
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookies(response, token: str, expire_seconds: int = 0) -> None:
    """Write the session cookie and the status marker cookie on the response.

    token cookie:       httponly, so page scripts cannot read it.
    auth-status cookie: readable by scripts; a presence signal only.
    Both use samesite=lax, Secure when SECURE_COOKIES=true, the optional
    COOKIE_DOMAIN, and a max_age matching the token expiry.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    domain = _settings.cookie_domain or None
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
        path="/",
        domain=domain,
    )
    response.set_cookie(
        STATUS_COOKIE,
        value=STATUS_COOKIE_VALUE,
        httponly=False,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
        path="/",
        domain=domain,
    )


def clear_auth_cookies(response) -> None:
    """Expire both auth cookies on the response."""
    domain = _settings.cookie_domain or None
    response.delete_cookie(SESSION_COOKIE, path="/", domain=domain)
    response.delete_cookie(STATUS_COOKIE, path="/", domain=domain)
