"""
auth/schemas.py -- Serialized shapes for user records and sessions.

These Pydantic v2 models define the on-disk / on-wire contract: the JSON list
kept in local storage under "app_users", the session JSON under
"app_current_user", and the fields of each remote user document. Keys are
camelCase because other client instances read and write the same documents.

Separation of concerns: auth/models.py dataclasses = domain truth;
auth/schemas.py = storage and replication contract. The to_/from_ helpers map
between the two, and every parse goes through validation so corrupted or
foreign data is rejected field by field rather than crashing a caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from auth.models import Role, Session, User

logger = logging.getLogger("workdesk.auth")


class UserDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    username: str = Field(min_length=1, max_length=255)
    display_name: str = Field(alias="displayName", default="")
    role: Role
    password_hash: str = Field(alias="passwordHash", min_length=1)

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @classmethod
    def from_user(cls, user: User) -> UserDocument:
        return cls(
            username=user.username,
            display_name=user.display_name,
            role=user.role,
            password_hash=user.password_hash,
        )

    def to_user(self) -> User:
        return User(
            username=self.username,
            display_name=self.display_name,
            role=self.role,
            password_hash=self.password_hash,
        )

    def to_wire(self) -> dict[str, str]:
        return self.model_dump(mode="json", by_alias=True)


class SessionDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    username: str = Field(min_length=1)
    display_name: str = Field(alias="displayName", default="")
    role: Role

    @classmethod
    def from_session(cls, session: Session) -> SessionDocument:
        return cls(username=session.username, display_name=session.display_name, role=session.role)

    def to_session(self) -> Session:
        return Session(username=self.username, display_name=self.display_name, role=self.role)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_user(raw: Any, *, source: str) -> Optional[User]:
    """Validate one raw user mapping. Returns None (and logs) when it is malformed."""
    try:
        return UserDocument.model_validate(raw).to_user()
    except ValidationError as exc:
        logger.warning("Skipping malformed user record from %s: %d error(s)", source, exc.error_count())
        return None


def parse_users(raws: Iterable[Any], *, source: str) -> list[User]:
    users: list[User] = []
    for raw in raws:
        user = parse_user(raw, source=source)
        if user is not None:
            users.append(user)
    return users


def dump_users(users: Iterable[User]) -> str:
    return json.dumps([UserDocument.from_user(u).to_wire() for u in users], ensure_ascii=False)


def load_users(raw: Optional[str], *, source: str) -> list[User]:
    """Parse the serialized directory. Missing or unreadable JSON yields an empty list."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning("Stored directory in %s is not valid JSON; treating it as empty", source)
        return []
    if not isinstance(data, list):
        logger.warning("Stored directory in %s is not a list; treating it as empty", source)
        return []
    return parse_users(data, source=source)
