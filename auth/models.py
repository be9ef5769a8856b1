"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the directory, session manager and flow do the work. The
serialized shape (camelCase JSON shared with other clients) lives in
auth/schemas.py, not here.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of roles. Drives the static permission table in auth/permissions.py."""

    admin = "admin"
    manager = "manager"
    engineer = "engineer"


class AuthState(str, Enum):
    logged_out = "logged_out"
    authenticating = "authenticating"
    logged_in = "logged_in"


@dataclass(frozen=True)
class User:
    """A directory entry.

    username is unique case-insensitively, but the stored value keeps the
    casing it was created with. password_hash is a Credential produced by
    auth.hashing.hash_password() (or a legacy SHA-256 hex digest migrated from
    an older client) and is never the plaintext.

    Frozen: updates go through dataclasses.replace() in the directory, so a
    User handed to a caller can never change underneath it.
    """

    username: str
    display_name: str
    role: Role
    password_hash: str

    @property
    def key(self) -> str:
        """Case-folded username used for uniqueness and lookup."""
        return normalize_username(self.username)


@dataclass(frozen=True)
class Session:
    """Who is logged in on this device.

    A value copy of the User taken at login time, not a reference. Renaming,
    re-roling or deleting the user afterwards does not touch an active
    session; the change is visible after the next login.
    """

    username: str
    display_name: str
    role: Role

    @classmethod
    def from_user(cls, user: User) -> Session:
        return cls(username=user.username, display_name=user.display_name, role=user.role)


def normalize_username(username: str) -> str:
    return (username or "").strip().casefold()
