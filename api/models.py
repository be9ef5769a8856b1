"""
API request and response models for the Workdesk auth API.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation, and from auth/schemas.py, which owns
the storage/replication shape. Route handlers map between them.

Password hashes never appear in any response model.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AuthState, Role, Session, User
from auth.permissions import Permissions

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # Not stripped: leading/trailing spaces are part of a password.
    password: str = Field(min_length=1, max_length=255, json_schema_extra={"format": "password"})


class PasswordChange(BaseModel):
    """Request body for POST /api/v1/auth/password."""

    current_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=1, max_length=255)


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    display_name: str = Field(min_length=1, max_length=255)
    role: Role = Role.engineer
    password: str = Field(min_length=1, max_length=255)


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{username}. Omitted fields are left untouched."""

    model_config = ConfigDict(str_strip_whitespace=True)

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[Role] = None
    password: Optional[str] = Field(default=None, min_length=1, max_length=255)


class PermissionFlags(BaseModel):
    """All nine feature flags. Every flag is required when saving overrides."""

    can_add_task: bool
    can_edit_task: bool
    can_delete_task: bool
    can_view_engineers: bool
    can_manage_engineers: bool
    can_view_salary: bool
    can_edit_salary: bool
    can_view_reports: bool
    can_view_settings: bool

    @classmethod
    def from_permissions(cls, perms: Permissions) -> "PermissionFlags":
        return cls(**perms.to_dict())


class PermissionOverrides(BaseModel):
    """Request/response body for /api/v1/permissions (non-admin roles only)."""

    manager: PermissionFlags
    engineer: PermissionFlags


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    display_name: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(username=user.username, display_name=user.display_name, role=user.role)


class SessionResponse(BaseModel):
    """Response for login and GET /api/v1/auth/session."""

    model_config = ConfigDict(frozen=True)

    username: str
    display_name: str
    role: Role
    state: AuthState
    permissions: PermissionFlags
    default_password_in_use: bool = False

    @classmethod
    def build(
        cls, session: Session, state: AuthState, perms: Permissions, default_password_in_use: bool = False
    ) -> "SessionResponse":
        return cls(
            username=session.username,
            display_name=session.display_name,
            role=session.role,
            state=state,
            permissions=PermissionFlags.from_permissions(perms),
            default_password_in_use=default_password_in_use,
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    remote_sync: bool = False
    pending_remote_ops: int = 0
