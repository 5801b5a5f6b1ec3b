"""
api/gatekeeper.py -- Edge gatekeeper for page navigation.

Runs as HTTP middleware in front of every route. It only checks that an
authentication indicator is PRESENT (the httpOnly "token" cookie or the
"auth-status" marker); it never verifies a signature. Full verification
happens in the route layer (auth.dependencies.get_session) on every API call,
and the page shells fetch their data from the API, so a forged marker cookie
gets a shell with no data and a 401 from the first request it makes.

Decision table:
  public page path (exact)         -> pass
  public API prefix                -> pass
  any other /api/... path          -> pass (route-level auth decides)
  any other path with an indicator -> pass
  any other path without one       -> 302 /auth/login?returnUrl=<path>
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse

from core.constants import (
    API_PREFIX,
    LOGIN_PAGE,
    PUBLIC_API_PREFIXES,
    PUBLIC_PAGE_PATHS,
    RETURN_URL_PARAM,
    SESSION_COOKIE,
    STATUS_COOKIE,
)

logger = logging.getLogger("proptrack.gatekeeper")

# Framework and asset paths that are never guarded.
_EXEMPT_PREFIXES = ("/static/", "/favicon.ico", "/openapi.json")


def is_public_path(path: str) -> bool:
    if path in PUBLIC_PAGE_PATHS:
        return True
    return path.startswith(PUBLIC_API_PREFIXES)


def is_api_path(path: str) -> bool:
    return path == API_PREFIX or path.startswith(API_PREFIX + "/")


def has_auth_indicator(cookies: Mapping[str, str]) -> bool:
    return bool(cookies.get(SESSION_COOKIE) or cookies.get(STATUS_COOKIE))


def login_redirect_url(path: str) -> str:
    """Return the login page URL carrying path as the return target."""
    return f"{LOGIN_PAGE}?{urlencode({RETURN_URL_PARAM: path})}"


async def edge_gatekeeper(request: Request, call_next):
    """Redirect unauthenticated page navigations to the login page."""
    path = request.url.path
    if is_public_path(path) or is_api_path(path) or path.startswith(_EXEMPT_PREFIXES):
        return await call_next(request)
    if has_auth_indicator(request.cookies):
        return await call_next(request)
    logger.info("Redirecting anonymous request for %s to login", path)
    return RedirectResponse(login_redirect_url(path), status_code=302)
