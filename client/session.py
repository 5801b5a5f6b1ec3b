"""
client/session.py -- requests-based API client with session tracking.

TrackerClient wraps one requests.Session (so cookies set by the server are
sent back automatically) and a SessionCache (so a bearer token is attached
when one is known).

Session state machine:

    unknown --check_auth()--> checking --200--> authenticated
       |                         |
       |  (no indicator)         +--401--> anonymous
       +-----------------------------------> anonymous

    authenticated --logout() or 401 from a protected call--> anonymous
    anonymous     --login()--> authenticated

A 401 from /api/auth/me only means "not logged in" and leaves the cache
alone. A 401 from any other endpoint means the stored credential is dead:
every cache tier and the jar's auth cookies are cleared and, if a redirect
callback is configured and the current page is not public, it is called with
the login URL.
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlencode

import requests

from client.store import MemoryTokenStore, SessionCache, StatusCookieStore, clear_auth_cookies
from core.constants import IDENTITY_ENDPOINT, LOGIN_PAGE, PUBLIC_PAGE_PATHS, RETURN_URL_PARAM

logger = logging.getLogger("proptrack.client")

_DEFAULT_TIMEOUT = 10


class SessionState(str, Enum):
    UNKNOWN = "unknown"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class AuthError(Exception):
    """Raised when the server rejects the client's credentials."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class TrackerClient:
    """HTTP client for the Proposal Tracker API.

    Args:
        base_url:     Server root, e.g. "http://localhost:8000".
        cache:        Token cache. Defaults to memory + the session's cookie jar.
        http:         requests.Session to use (tests pass a mock).
        on_redirect:  Called with the login URL when a protected call gets 401.
        current_path: The page the caller is on, for the returnUrl parameter
                      and the public-page loop guard. None means no page.
    """

    def __init__(
        self,
        base_url: str,
        cache: Optional[SessionCache] = None,
        http: Optional[requests.Session] = None,
        on_redirect: Optional[Callable[[str], None]] = None,
        current_path: Optional[str] = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.cache = cache if cache is not None else SessionCache([MemoryTokenStore(), StatusCookieStore(self.http.cookies)])
        self.on_redirect = on_redirect
        self.current_path = current_path
        self.timeout = timeout
        self.state = SessionState.UNKNOWN
        self.user: Optional[dict] = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state != self.state:
            logger.debug("Session state %s -> %s", self.state.value, state.value)
        self.state = state

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def attach(self, headers: Optional[dict] = None) -> dict:
        """Return headers with a bearer token added when one is cached."""
        headers = dict(headers or {})
        token = self.cache.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def login_url(self) -> str:
        if not self.current_path:
            return LOGIN_PAGE
        return f"{LOGIN_PAGE}?{urlencode({RETURN_URL_PARAM: self.current_path})}"

    def _forget_session(self) -> None:
        self.cache.clear()
        clear_auth_cookies(self.http.cookies)
        self.user = None
        self._set_state(SessionState.ANONYMOUS)

    def _handle_unauthorized(self) -> None:
        logger.info("Session rejected by server; clearing cached credentials")
        self._forget_session()
        if self.on_redirect is None:
            return
        if self.current_path in PUBLIC_PAGE_PATHS:
            return
        self.on_redirect(self.login_url())

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send an authenticated request and apply the 401 policy."""
        kwargs["headers"] = self.attach(kwargs.get("headers"))
        kwargs.setdefault("timeout", self.timeout)
        resp = self.http.request(method, self._url(path), **kwargs)
        if resp.status_code == 401 and path.split("?", 1)[0] != IDENTITY_ENDPOINT:
            self._handle_unauthorized()
        return resp

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def check_auth(self) -> Optional[dict]:
        """Ask the server who we are. Returns the user dict or None.

        Without any indicator there is nothing to check, so the client goes
        straight to anonymous without a network call.
        """
        if not self.cache.has_indicator():
            self._set_state(SessionState.ANONYMOUS)
            return None
        self._set_state(SessionState.CHECKING)
        resp = self.request("GET", IDENTITY_ENDPOINT)
        if resp.status_code == 200:
            data = resp.json()
            if data.get("authenticated"):
                self.user = data.get("user")
                self._set_state(SessionState.AUTHENTICATED)
                return self.user
        self.user = None
        self._set_state(SessionState.ANONYMOUS)
        return None

    def login(self, email: str, password: str) -> dict:
        """Log in and cache the issued token in every tier.

        Raises AuthError on bad credentials; other HTTP errors propagate as
        requests.HTTPError.
        """
        resp = self.http.post(
            self._url("/api/auth/login"),
            json={"email": email, "password": password},
            timeout=self.timeout,
        )
        if resp.status_code == 401:
            raise AuthError(resp.json().get("message", "Invalid email or password."))
        resp.raise_for_status()
        data = resp.json()
        self.cache.set_token(data["token"])
        self.user = data["user"]
        self._set_state(SessionState.AUTHENTICATED)
        logger.info("Logged in as %s", self.user.get("email"))
        return self.user

    def logout(self) -> None:
        """Tell the server to clear cookies, then forget the session locally."""
        try:
            self.http.post(self._url("/api/auth/logout"), headers=self.attach(), timeout=self.timeout)
        finally:
            self._forget_session()

    # ------------------------------------------------------------------
    # API helpers
    # ------------------------------------------------------------------

    def _checked(self, resp: requests.Response) -> requests.Response:
        if resp.status_code in (401, 403):
            try:
                message = resp.json().get("message", "Unauthorized")
            except ValueError:
                message = "Unauthorized"
            raise AuthError(message, status_code=resp.status_code)
        resp.raise_for_status()
        return resp

    def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        return self._checked(self.request("GET", path, params=params)).json()

    def export(self, fmt: str = "csv", fields: Optional[list[str]] = None, **filters: Any) -> bytes:
        """Download an export. filters are the list endpoint's query params."""
        params = {"format": fmt, **{k: v for k, v in filters.items() if v is not None}}
        if fields:
            params["fields"] = ",".join(fields)
        return self._checked(self.request("GET", "/api/submissions/export", params=params)).content
