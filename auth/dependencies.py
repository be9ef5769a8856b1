"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The API serves the dashboard running on this device, so "the current user" is
the device's single session slot held by the Authenticator on app.state.

try_get_current_session() is the soft variant (returns None when logged out).
get_current_session() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_session() and raises HTTP 403 if not admin.

Layer rule: auth/dependencies.py may import from fastapi (for HTTPException/
Request) because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.flow import Authenticator
from auth.models import Role, Session
from auth.permissions import PermissionTable


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def get_permission_table(request: Request) -> PermissionTable:
    return request.app.state.permissions


def try_get_current_session(request: Request) -> Session | None:
    """Return the active session, or None. Never raises."""
    return get_authenticator(request).current()


def get_current_session(request: Request) -> Session:
    """Require a logged-in session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(session: Session = Depends(get_current_session)): ...
    """
    session = try_get_current_session(request)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session


def require_admin(request: Request) -> Session:
    """Require the admin role. Raises HTTP 401 if logged out, HTTP 403 if not admin."""
    session = get_current_session(request)
    if session.role is not Role.admin:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return session
