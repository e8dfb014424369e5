"""
api/main.py -- FastAPI application entry point for the staff auth service.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for the configured frontend origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. SessionMiddleware  -- OAuth state storage for the Google flow
  4. track_activity     -- touches the idle tracker for valid bearer tokens
  5. log_requests       -- one access-log line per request

Lifespan builds the store, mail dispatcher, identity service and activity
tracker on startup and tears them down symmetrically on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.activity import ActivityTracker
from auth.dependencies import try_get_claim
from auth.errors import AuthError
from auth.oauth import oauth as oauth_client
from auth.service import IdentityService
from auth.store import IdentityStore
from core.config import get_settings
from mail.dispatcher import build_dispatcher

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("staffauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create shared resources on startup and release them on shutdown."""
    logger.info("Staff auth API starting up")
    store = IdentityStore(db_url=_settings.database_url)
    app.state.identity_service = IdentityService(
        store,
        build_dispatcher(_settings),
        frontend_url=_settings.frontend_url,
        recovery_ttl_seconds=_settings.recovery_token_ttl_seconds,
    )
    app.state.activity = ActivityTracker(_settings.inactivity_timeout_seconds)
    app.state.oauth = oauth_client
    logger.info(
        "Auth initialized (google=%s, mail=%s)",
        _settings.google_enabled,
        _settings.mail_enabled,
    )

    yield

    app.state.activity.shutdown()
    store.close()
    logger.info("Staff auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Staff Auth API",
    description="Identity, session, password recovery and role/sector authorization for the staff backend.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Functional middlewares (@app.middleware) are registered first so they end
# up innermost; add_middleware() calls wrap them from the outside.
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


@app.middleware("http")
async def track_activity(request: Request, call_next):
    """Refresh the idle timer for the token's subject.

    Invalid or missing tokens are ignored here; protected routes reject them
    through their own dependencies.
    """
    claim = try_get_claim(request)
    tracker = getattr(request.app.state, "activity", None)
    if claim is not None and tracker is not None:
        tracker.touch(claim.subject_id)
    return await call_next(request)


app.add_middleware(SessionMiddleware, secret_key=_settings.secret_key)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves through _error_response() so clients always parse the
# same {"error": {code, message, detail}} envelope.
# ---------------------------------------------------------------------------


def _error_response(
    status: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render a domain error raised by the identity service or a guard."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.__cause__ or exc)
    return _error_response(exc.status_code, exc.code, exc.message, detail=exc.field)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    retry_after = str(int(getattr(exc, "retry_after", 60)))
    return _error_response(
        429, "rate_limited", "Too many attempts. Try again later.", str(exc), headers={"Retry-After": retry_after}
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed body or params. Same envelope for plain and decrypted bodies."""
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback is logged; the client gets an opaque message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
