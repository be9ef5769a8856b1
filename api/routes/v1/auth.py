"""
api/routes/v1/auth.py -- Login, logout, and session REST endpoints.

Routes:
  POST /api/v1/auth/login     -- password login; starts the device session
  POST /api/v1/auth/logout    -- ends the device session; 200
  GET  /api/v1/auth/session   -- current session, state and permissions (requires auth)
  POST /api/v1/auth/password  -- change the logged-in user's password (requires auth)

Security:
  POST /login is rate-limited per client (LOGIN_RATE_LIMIT, default 10/minute).
  Unknown username and wrong password produce byte-identical 401 bodies.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.models import ErrorDetail, ErrorResponse, LoginRequest, PasswordChange, SessionResponse
from auth.dependencies import get_authenticator, get_current_session, get_permission_table
from auth.errors import InvalidCredentialsError, LoginInProgressError
from auth.flow import Authenticator
from auth.models import Session
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- ending a session needs no prior auth
# - GET  /api/v1/auth/session:   requires auth (get_current_session)
# - POST /api/v1/auth/password:  requires auth (get_current_session)
router = APIRouter()

# One process-wide instance. api/main.py mounts it as app.state.limiter so the
# SlowAPI middleware and @limiter.limit() below count against the same store.
limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


async def _session_response(request: Request, session: Session) -> SessionResponse:
    auth: Authenticator = get_authenticator(request)
    perms = get_permission_table(request).for_role(session.role)
    return SessionResponse.build(
        session,
        auth.state,
        perms,
        default_password_in_use=await auth.is_using_default_password(),
    )


@router.post("/auth/login", response_model=SessionResponse)
@limiter.limit(get_settings().login_rate_limit)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; start the session.

    Returns the same generic error for wrong username and wrong password
    ("bad_credentials") to avoid leaking username existence information.

    A session already active on this device ends as soon as the attempt
    starts, whether or not the new credentials check out. A second attempt
    arriving while one is still being verified gets 409 "login_in_progress"
    and leaves the first attempt alone.
    """
    auth = get_authenticator(request)
    try:
        session = await auth.login(body.username, body.password)
    except (InvalidCredentialsError, LoginInProgressError) as exc:
        status = 409 if isinstance(exc, LoginInProgressError) else 401
        resp = JSONResponse(
            status_code=status,
            content=ErrorResponse(error=ErrorDetail(code=exc.code, message=str(exc))).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    payload = await _session_response(request, session)
    resp = JSONResponse(status_code=200, content=payload.model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout")
async def logout(request: Request) -> JSONResponse:
    """End the device session."""
    get_authenticator(request).logout()
    return JSONResponse(content={"message": "Logged out."})


@router.get("/auth/session", response_model=SessionResponse)
async def current_session(request: Request, session: Session = Depends(get_current_session)) -> SessionResponse:
    """Return the session on this device. Reflects the user as of login time."""
    return await _session_response(request, session)


@router.post("/auth/password")
async def change_password(
    request: Request,
    body: PasswordChange,
    session: Session = Depends(get_current_session),
) -> JSONResponse:
    """Rotate the logged-in user's password after re-checking the current one."""
    auth = get_authenticator(request)
    try:
        await auth.change_password(session.username, body.current_password, body.new_password)
    except InvalidCredentialsError as exc:
        raise HTTPException(status_code=401, detail={"code": exc.code, "message": str(exc)}) from exc
    return JSONResponse(content={"message": "Password updated."})
