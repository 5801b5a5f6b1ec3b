"""
api/main.py -- FastAPI application entry point for Proposal Tracker.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. edge_gatekeeper       -- redirects anonymous page navigations to login
  5. log_requests          -- one access log line per request

Lifespan handles startup (engine + stores) and shutdown (engine disposal)
symmetrically.

Every error response uses the same body: {"message", "error"} plus "detail"
when DEBUG=true. Validation failures are 400, not FastAPI's default 422.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.gatekeeper import edge_gatekeeper
from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.reports import router as reports_router
from api.routes.submissions import router as submissions_router
from api.routes.user import router as user_router
from auth.dependencies import get_session
from auth.models import SessionIdentity
from auth.store import AccountStore
from core.config import get_settings
from core.db import dispose_engine, get_engine, ping
from tracker.store import SubmissionStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("proptrack.api")

settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared engine and stores on startup, dispose on shutdown.

    Both stores share the process-wide engine from core.db, so there is one
    connection pool regardless of how many stores exist.
    """
    logger.info("Proposal Tracker API starting up")
    engine = get_engine()
    app.state.engine = engine
    app.state.account_store = AccountStore(engine)
    app.state.submission_store = SubmissionStore(engine)
    logger.info("Stores initialized (%d accounts)", app.state.account_store.count_accounts())

    yield

    dispose_engine()
    logger.info("Proposal Tracker API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Proposal Tracker API",
    description="Track freelance proposal submissions, outcomes and pricing.",
    version=VERSION,
    lifespan=lifespan,
    # Replaced by the auth-protected routes below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Each add_middleware() call wraps the app built so far, so the LAST one
# registered is the outermost. @app.middleware("http") functions are
# registered the same way. Registered innermost-first here.
# ---------------------------------------------------------------------------


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


app.middleware("http")(edge_gatekeeper)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(submissions_router, prefix="/api", tags=["Submissions"])
app.include_router(reports_router, prefix="/api", tags=["Reports"])
app.include_router(user_router, prefix="/api", tags=["User"])
# Page shells are mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(session: SessionIdentity = Depends(get_session)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Proposal Tracker API")


@app.get("/redoc", include_in_schema=False)
async def redoc(session: SessionIdentity = Depends(get_session)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="Proposal Tracker API")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def error_body(message: str, error: str, detail: str | None = None) -> dict:
    """Build the uniform error body. detail is dropped unless DEBUG=true."""
    return ErrorResponse(
        message=message,
        error=error,
        detail=detail if settings.debug else None,
    ).model_dump(exclude_none=True)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=error_body("Too many requests.", "rate_limited", str(exc.detail)),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body or query params fail validation."""
    return JSONResponse(
        status_code=400,
        content=error_body("Request validation failed.", "validation_error", str(exc.errors())),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return the uniform body for every FastAPI/Starlette HTTP exception.

    Routes raise HTTPException(detail={"message": ..., "error": ...}). A
    plain-string detail (Starlette's own 404/405) is wrapped as http_<status>.
    """
    if isinstance(exc.detail, dict):
        content = dict(exc.detail)
        if not settings.debug:
            content.pop("detail", None)
    else:
        code = "not_found" if exc.status_code == 404 else f"http_{exc.status_code}"
        content = error_body(str(exc.detail), code)
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log. The exception text reaches the client
    only in debug mode.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body("Internal server error.", "internal_error", str(exc)),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit: load balancers and monitors must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
async def health(request: Request) -> JSONResponse:
    """Return liveness, version and a database round-trip check."""
    engine = getattr(request.app.state, "engine", None) or request.app.state.account_store.engine
    db_ok = ping(engine)
    body = HealthResponse(
        status="ok" if db_ok else "degraded",
        version=VERSION,
        database="ok" if db_ok else "error",
    )
    return JSONResponse(status_code=200 if db_ok else 503, content=body.model_dump())
