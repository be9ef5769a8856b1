"""
api/routes/v1/users.py -- User directory management (admin only).

Routes:
  GET    /api/v1/users              -- list all users
  POST   /api/v1/users              -- create user (409 on case-insensitive duplicate)
  PATCH  /api/v1/users/{username}   -- partial update of display name / role / password
  DELETE /api/v1/users/{username}   -- remove user; idempotent 204, 409 for the only
                                      admin or the account logged in here

Every mutation is committed to the local store before the response is sent.
Remote replication happens afterwards in the background; its outcome is not
reflected in the response.

Editing or deleting a user does not affect a session that user already has.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import UserCreate, UserPatch, UserResponse
from auth.dependencies import get_authenticator, require_admin
from auth.errors import CannotDeleteSelfError, DuplicateUsernameError, LastAdminError, UserNotFoundError
from auth.models import Session

router = APIRouter()


@router.get("/users", response_model=list[UserResponse])
async def list_users(request: Request, session: Session = Depends(require_admin)) -> list[UserResponse]:
    """List every user in the local directory."""
    directory = get_authenticator(request).directory
    return [UserResponse.from_user(u) for u in sorted(directory.list(), key=lambda u: u.key)]


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    request: Request,
    body: UserCreate,
    session: Session = Depends(require_admin),
) -> UserResponse:
    """Create a user account."""
    directory = get_authenticator(request).directory
    try:
        user = await directory.add(body.username, body.display_name, body.role, body.password)
    except DuplicateUsernameError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": exc.code, "message": "A user with that username already exists."},
        ) from exc
    return UserResponse.from_user(user)


@router.patch("/users/{username}", response_model=UserResponse)
async def update_user(
    request: Request,
    username: str,
    body: UserPatch,
    session: Session = Depends(require_admin),
) -> UserResponse:
    """Update display name, role and/or password. Omitted fields are untouched."""
    if body.display_name is None and body.role is None and body.password is None:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    directory = get_authenticator(request).directory
    try:
        user = await directory.update(
            username,
            display_name=body.display_name,
            role=body.role,
            password=body.password,
        )
    except UserNotFoundError as exc:
        raise HTTPException(
            status_code=404,
            detail={"code": exc.code, "message": "User not found."},
        ) from exc
    return UserResponse.from_user(user)


@router.delete("/users/{username}", status_code=204)
async def delete_user(request: Request, username: str, session: Session = Depends(require_admin)) -> Response:
    """Remove a user. Removing an unknown username still returns 204."""
    try:
        get_authenticator(request).remove_user(username)
    except (LastAdminError, CannotDeleteSelfError) as exc:
        raise HTTPException(status_code=409, detail={"code": exc.code, "message": str(exc)}) from exc
    return Response(status_code=204)
