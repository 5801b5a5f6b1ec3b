"""
core/constants.py -- Names shared by the server and the browser/CLI client.

The edge gatekeeper, the auth routes and the client session cache all need to
agree on cookie names and on which paths are public. Keeping them here lets the
client import them without pulling in server settings (which require a
SECRET_KEY).

Layer rule: no imports from the rest of the project.
"""

# httpOnly cookie carrying the signed session token.
SESSION_COOKIE = "token"

# Non-httpOnly marker cookie. A cheap "probably logged in" signal for page
# navigation and client code; it is never a credential.
STATUS_COOKIE = "auth-status"
STATUS_COOKIE_VALUE = "logged-in"

LOGIN_PAGE = "/auth/login"
RETURN_URL_PARAM = "returnUrl"

# The "am I logged in" endpoint. A 401 from here means anonymous, not expired.
IDENTITY_ENDPOINT = "/api/auth/me"

# Page paths reachable without any authentication indicator (exact match).
PUBLIC_PAGE_PATHS: frozenset[str] = frozenset(
    {
        "/",
        "/auth/login",
        "/auth/register",
        "/auth/forgot-password",
        "/auth/reset-password",
    }
)

# API paths that never require a session (prefix match).
PUBLIC_API_PREFIXES: tuple[str, ...] = (
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/forgot-password",
    "/api/auth/reset-password",
    "/api/health",
)

API_PREFIX = "/api"
