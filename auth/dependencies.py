"""
auth/dependencies.py -- Credential extraction, session resolution, and the
FastAPI Depends() helpers that gate protected routes.

Token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients and the browser
     client's fetch wrapper.
  2. "token" cookie -- set by POST /api/auth/login (httpOnly).
  3. Raw Cookie header, parsed by hand -- fallback for requests whose cookie
     mapping came through empty.

extract_token() only finds a candidate; decode_access_token() decides whether
it is valid. resolve_session() combines the two and never raises.
get_session() wraps it and raises HTTP 401. require_operator() wraps
get_session() and raises HTTP 403 for observers.

Layer rule: no imports from web/, tracker/ or client/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Optional

from fastapi import HTTPException, Request

from auth.models import ROLE_OPERATOR, SessionIdentity, SessionResolution
from auth.tokens import decode_access_token
from core.constants import SESSION_COOKIE

logger = logging.getLogger("proptrack.auth")

NO_TOKEN = "no-token"
INVALID_TOKEN = "invalid-token"

_BEARER_PREFIX = "Bearer "


def _parse_cookie_header(raw: str) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for part in raw.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            cookies[name.strip()] = value.strip()
    return cookies


def extract_token(headers: Mapping[str, str], cookies: Mapping[str, str]) -> Optional[str]:
    """Return the first candidate session token, or None.

    Purely structural: the token is not verified here.
    """
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header.startswith(_BEARER_PREFIX):
        token = auth_header[len(_BEARER_PREFIX) :].strip()
        if token:
            return token

    token = cookies.get(SESSION_COOKIE)
    if token:
        return token

    raw_cookie = headers.get("cookie") or headers.get("Cookie") or ""
    if raw_cookie:
        token = _parse_cookie_header(raw_cookie).get(SESSION_COOKIE)
        if token:
            return token
    return None


def extract_request_token(request: Request) -> Optional[str]:
    return extract_token(request.headers, request.cookies)


def resolve_session(request: Request) -> SessionResolution:
    """Resolve the request to a verified identity or a rejection reason."""
    token = extract_request_token(request)
    if not token:
        return SessionResolution(reason=NO_TOKEN)
    identity = decode_access_token(token)
    if identity is None:
        return SessionResolution(reason=INVALID_TOKEN)
    return SessionResolution(identity=identity)


def get_session(request: Request) -> SessionIdentity:
    """Require a verified session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: SessionIdentity = Depends(get_session)): ...
    """
    resolution = resolve_session(request)
    if resolution.identity is None:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, resolution.reason)
        raise HTTPException(
            status_code=401,
            detail={"message": "Unauthorized", "error": resolution.reason},
        )
    return resolution.identity


def require_operator(request: Request) -> SessionIdentity:
    """Require the operator role. 401 if unauthenticated, 403 for observers."""
    session = get_session(request)
    if session.role != ROLE_OPERATOR:
        raise HTTPException(
            status_code=403,
            detail={"message": "Only operators can modify submissions.", "error": "forbidden"},
        )
    return session
