"""
web/routes.py -- Jinja2 page shells for the Proposal Tracker browser UI.

Each page is a thin HTML shell; the data on it is fetched from the JSON API by
page scripts, which attach the session cookie automatically. The shells exist
so the edge gatekeeper has real page paths to guard: anonymous navigation to
any /dashboard page is redirected to /auth/login?returnUrl=<path> before a
handler here runs.

Routes:
  GET  /                        -- landing page (public)
  GET  /auth/login              -- login form (public)
  GET  /auth/register           -- registration form (public)
  GET  /auth/forgot-password    -- reset request form (public)
  GET  /auth/reset-password     -- new password form (public)
  GET  /dashboard               -- dashboard shell
  GET  /dashboard/{section}     -- submissions, reports, export, settings shells
  GET  /logout                  -- clear cookies, redirect to /auth/login
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import resolve_session
from auth.tokens import clear_auth_cookies
from core.constants import LOGIN_PAGE, RETURN_URL_PARAM

logger = logging.getLogger("proptrack.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

_DEFAULT_LANDING = "/dashboard"

# Titles double as the whitelist of dashboard sections.
_DASHBOARD_SECTIONS: dict[str, str] = {
    "submissions": "Submissions",
    "reports": "Reports",
    "export": "Export",
    "settings": "Settings",
}

_AUTH_PAGES: dict[str, str] = {
    "login": "Sign in",
    "register": "Create account",
    "forgot-password": "Forgot password",
    "reset-password": "Reset password",
}


def _safe_return(return_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative "//host" targets so the login
    page cannot be used as an open redirect.
    """
    if return_url and return_url.startswith("/") and not return_url.startswith("//"):
        return return_url
    return _DEFAULT_LANDING


def _render(request: Request, page: str, title: str, **context) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "shell.html",
        {"page": page, "title": title, **context},
    )


@router.get("/", response_class=HTMLResponse)
def landing(request: Request) -> HTMLResponse:
    signed_in = resolve_session(request).ok
    return _render(request, "landing", "Proposal Tracker", signed_in=signed_in)


@router.get("/auth/{page}", response_class=HTMLResponse)
def auth_page(request: Request, page: str) -> HTMLResponse:
    """Render one of the public auth forms."""
    title = _AUTH_PAGES.get(page)
    if title is None:
        raise HTTPException(status_code=404, detail="Page not found.")
    return_url = _safe_return(request.query_params.get(RETURN_URL_PARAM))
    # Already signed in: skip the login form.
    if page == "login" and resolve_session(request).ok:
        return RedirectResponse(return_url, status_code=302)
    return _render(
        request,
        f"auth-{page}",
        title,
        return_url=return_url,
        reset_token=request.query_params.get("token", ""),
    )


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request) -> HTMLResponse:
    return _render(request, "dashboard", "Dashboard")


@router.get("/dashboard/{section}", response_class=HTMLResponse)
def dashboard_section(request: Request, section: str) -> HTMLResponse:
    title = _DASHBOARD_SECTIONS.get(section)
    if title is None:
        raise HTTPException(status_code=404, detail="Page not found.")
    return _render(request, f"dashboard-{section}", title)


@router.get("/logout")
def logout(request: Request) -> RedirectResponse:
    """Clear both auth cookies and return to the login page."""
    resp = RedirectResponse(LOGIN_PAGE, status_code=302)
    clear_auth_cookies(resp)
    return resp
