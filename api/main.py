"""
api/main.py -- FastAPI app for the Workdesk dashboard running on this device.

Run with:  uvicorn api.main:app --reload

Request path, outermost first: TrustedHost, CORS, SlowAPI (login limit),
request log, then the v1 routers mounted under /api/v1.

Startup blocks on Authenticator.boot(): the remote pull, default-admin
seeding and session restore all finish before the first request is served.
Shutdown drains queued remote pushes before the stores are closed.

Every error leaves the app as {"error": {"code", "message", "detail"}}.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import limiter
from api.routes.v1.auth import router as auth_router
from api.routes.v1.permissions import router as permissions_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError
from auth.runtime import build_runtime
from core.config import get_settings

__version__ = "0.1.0"

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("workdesk.api")

# AuthError subclasses a route did not translate itself.
_AUTH_ERROR_STATUS = {
    "bad_credentials": 401,
    "user_not_found": 404,
    "duplicate_username": 409,
    "login_in_progress": 409,
    "last_admin": 409,
    "cannot_delete_self": 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth runtime, boot it, and tear it down on shutdown.

    boot() pulls the team directory before seeding, so a device joining a
    provisioned team adopts the team's admin instead of creating its own.
    """
    runtime = build_runtime()
    app.state.runtime = runtime
    app.state.authenticator = runtime.authenticator
    app.state.permissions = runtime.permissions
    await runtime.authenticator.boot()
    logger.info("Workdesk API ready")

    yield

    await runtime.close()
    logger.info("Workdesk API stopped")


app = FastAPI(
    title="Workdesk API",
    description="Local-first credential and user-directory manager for the Workdesk dashboard.",
    version=__version__,
    lifespan=lifespan,
)

# Registered outermost-first: TrustedHost -> CORS -> SlowAPI.
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"],
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(permissions_router, prefix="/api/v1", tags=["Permissions"])


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def _error(status: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status, content=body.model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _error(429, "rate_limited", "Too many login attempts. Try again later.", str(exc.detail))
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Routes raise HTTPException with a {"code", "message"} dict; pass it through as-is."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return _error(_AUTH_ERROR_STATUS.get(exc.code, 400), exc.code, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    # Directory input rules: empty username or password, unknown role.
    return _error(400, "invalid_input", str(exc))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback; never echo the exception to the client."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Liveness plus remote sync status. No auth, no rate limit."""
    mirror = request.app.state.authenticator.mirror
    return HealthResponse(version=__version__, remote_sync=mirror.enabled, pending_remote_ops=mirror.pending)
