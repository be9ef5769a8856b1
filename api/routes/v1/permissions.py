"""
api/routes/v1/permissions.py -- Role permission overrides.

Routes:
  GET /api/v1/permissions  -- effective flags for manager and engineer (requires auth)
  PUT /api/v1/permissions  -- replace the overrides (admin only)

Admin permissions are fixed and not part of either payload.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import PermissionFlags, PermissionOverrides
from auth.dependencies import get_current_session, get_permission_table, require_admin
from auth.models import Role, Session
from auth.permissions import Permissions

router = APIRouter()


def _to_body(table: dict[Role, Permissions]) -> PermissionOverrides:
    return PermissionOverrides(
        manager=PermissionFlags.from_permissions(table[Role.manager]),
        engineer=PermissionFlags.from_permissions(table[Role.engineer]),
    )


@router.get("/permissions", response_model=PermissionOverrides)
async def get_permissions(request: Request, session: Session = Depends(get_current_session)) -> PermissionOverrides:
    return _to_body(get_permission_table(request).overrides())


@router.put("/permissions", response_model=PermissionOverrides)
async def save_permissions(
    request: Request,
    body: PermissionOverrides,
    session: Session = Depends(require_admin),
) -> PermissionOverrides:
    try:
        saved = get_permission_table(request).save_overrides(
            {Role.manager: body.manager.model_dump(), Role.engineer: body.engineer.model_dump()}
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_permissions", "message": str(exc)}) from exc
    return _to_body(saved)
