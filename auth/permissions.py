"""
auth/permissions.py -- Role to feature-permission mapping.

Admin always holds every permission and cannot be overridden. Manager and
engineer start from the static defaults below; an admin may save per-role
overrides, which persist in the local store under "app_role_permissions".

A stored override blob is only honoured when it names every non-admin role
with every flag as a bool. Anything else (partial, corrupted, from an older
client with different flags) falls back to the defaults as a whole.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Mapping

from auth.models import Role
from storage.local import LocalStore

logger = logging.getLogger("workdesk.auth")

PERMISSIONS_KEY = "app_role_permissions"


@dataclass(frozen=True)
class Permissions:
    can_add_task: bool = False
    can_edit_task: bool = False
    can_delete_task: bool = False
    can_view_engineers: bool = False
    can_manage_engineers: bool = False
    can_view_salary: bool = False
    can_edit_salary: bool = False
    can_view_reports: bool = False
    can_view_settings: bool = False

    @classmethod
    def flag_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @classmethod
    def all_granted(cls) -> Permissions:
        return cls(**{name: True for name in cls.flag_names()})

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


ADMIN_PERMISSIONS = Permissions.all_granted()

DEFAULT_ROLE_PERMISSIONS: dict[Role, Permissions] = {
    Role.manager: Permissions(
        can_add_task=True,
        can_edit_task=True,
        can_view_engineers=True,
        can_view_salary=True,
        can_view_reports=True,
    ),
    Role.engineer: Permissions(),
}

OVERRIDABLE_ROLES = tuple(DEFAULT_ROLE_PERMISSIONS)


def _parse_overrides(data: Any) -> dict[Role, Permissions] | None:
    if not isinstance(data, dict):
        return None
    names = Permissions.flag_names()
    parsed: dict[Role, Permissions] = {}
    for role in OVERRIDABLE_ROLES:
        entry = data.get(role.value)
        if not isinstance(entry, dict):
            return None
        if not all(isinstance(entry.get(name), bool) for name in names):
            return None
        parsed[role] = Permissions(**{name: entry[name] for name in names})
    return parsed


class PermissionTable:
    def __init__(self, local: LocalStore) -> None:
        self._local = local

    def overrides(self) -> dict[Role, Permissions]:
        """Effective permissions for every non-admin role (stored overrides or defaults)."""
        raw = self._local.get(PERMISSIONS_KEY)
        if raw:
            try:
                parsed = _parse_overrides(json.loads(raw))
            except ValueError:
                parsed = None
            if parsed is not None:
                return parsed
            logger.warning("Ignoring invalid role permission overrides in %s", PERMISSIONS_KEY)
        return dict(DEFAULT_ROLE_PERMISSIONS)

    def for_role(self, role: Role | str) -> Permissions:
        role = Role(role)
        if role is Role.admin:
            return ADMIN_PERMISSIONS
        return self.overrides()[role]

    def save_overrides(self, table: Mapping[Role | str, Mapping[str, bool] | Permissions]) -> dict[Role, Permissions]:
        """Validate and persist overrides for every non-admin role.

        Raises ValueError if a role is missing, admin is included, or a flag is
        missing or not a bool.
        """
        blob: dict[str, dict[str, bool]] = {}
        for key, value in table.items():
            role = Role(key)
            if role is Role.admin:
                raise ValueError("Admin permissions cannot be overridden")
            blob[role.value] = value.to_dict() if isinstance(value, Permissions) else dict(value)
        parsed = _parse_overrides(blob)
        if parsed is None:
            raise ValueError(
                f"Overrides must cover roles {[r.value for r in OVERRIDABLE_ROLES]} "
                f"with boolean flags {list(Permissions.flag_names())}"
            )
        self._local.set(PERMISSIONS_KEY, json.dumps({r.value: p.to_dict() for r, p in parsed.items()}))
        logger.info("Role permission overrides saved")
        return parsed

    def reset(self) -> None:
        self._local.remove(PERMISSIONS_KEY)
