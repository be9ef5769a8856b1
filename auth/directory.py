"""
auth/directory.py -- The user directory: users keyed by unique, case-insensitive username.

Pattern: Repository. UserDirectory is the only code that reads or writes the
"app_users" key; the flow, the API and the CLI go through it.

Durability contract:
  Every mutating call (add / update / remove / ensure_default_user /
  replace_all) writes the full directory to the local store before it
  returns. That local write is the durability boundary. The remote push is
  scheduled afterwards on the mirror and may still be in flight -- or fail
  silently -- once the call has returned.

Concurrency: one logical writer per device. There is no lock around the
in-memory list; two writers on the same device are not guarded against.

Seeding:
  ensure_default_user() creates the first "admin" only when the directory is
  empty, and must run after RemoteMirror.pull(). Pulling first lets a device
  joining an already-provisioned team adopt the team's users instead of
  seeding a second admin with a different password.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Union

from auth.errors import DuplicateUsernameError, UserNotFoundError
from auth.hashing import hash_password
from auth.models import Role, User, normalize_username
from auth.schemas import dump_users, load_users
from core.config import get_settings
from storage.local import LocalStore

if TYPE_CHECKING:
    from remote.mirror import RemoteMirror

logger = logging.getLogger("workdesk.directory")

USERS_KEY = "app_users"
# Written by older single-password clients. Read-only here: it only feeds the
# first admin's credential during seeding.
LEGACY_PASSWORD_HASH_KEY = "app_password_hash"

DEFAULT_ADMIN_USERNAME = "admin"


def _coerce_role(role: Union[Role, str]) -> Role:
    try:
        return Role(role.strip().lower() if isinstance(role, str) else role)
    except ValueError:
        raise ValueError(f"Unknown role {role!r}; expected one of {[r.value for r in Role]}") from None


class UserDirectory:
    """Repository for User records.

    Usage:
        directory = UserDirectory(LocalStore(), mirror=RemoteMirror(remote))
        await directory.add("bob", "Bob B", "engineer", "longpassword1")
        user = directory.find("BOB")
        await directory.update("bob", role="manager")
        directory.remove("bob")
    """

    def __init__(self, local: LocalStore, mirror: Optional[RemoteMirror] = None) -> None:
        self._local = local
        self._mirror = mirror
        self._users: list[User] = load_users(local.get(USERS_KEY), source=f"local:{USERS_KEY}")

    # ------------------------------------------------------------------
    # Queries (local only, synchronous)
    # ------------------------------------------------------------------

    def list(self) -> list[User]:
        """Return every known user. Never touches the network."""
        return list(self._users)

    def find(self, username: str) -> Optional[User]:
        """Case-insensitive lookup. Returns None if no user matches."""
        key = normalize_username(username)
        if not key:
            return None
        for user in self._users:
            if user.key == key:
                return user
        return None

    def __len__(self) -> int:
        return len(self._users)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add(self, username: str, display_name: str, role: Union[Role, str], password: str) -> User:
        """Create a user. Raises DuplicateUsernameError on a case-insensitive collision."""
        username = (username or "").strip()
        if not username:
            raise ValueError("Username must not be empty")
        if not password:
            raise ValueError("Password must not be empty")
        role = _coerce_role(role)
        if self.find(username) is not None:
            raise DuplicateUsernameError(username)

        password_hash = await asyncio.to_thread(hash_password, password)
        # Re-check: another coroutine may have added the name while PBKDF2 ran.
        if self.find(username) is not None:
            raise DuplicateUsernameError(username)

        user = User(
            username=username,
            display_name=(display_name or "").strip() or username,
            role=role,
            password_hash=password_hash,
        )
        self._users.append(user)
        self._commit()
        logger.info("User %s added (role=%s)", user.username, user.role.value)
        return user

    async def update(
        self,
        username: str,
        *,
        display_name: Optional[str] = None,
        role: Union[Role, str, None] = None,
        password: Optional[str] = None,
    ) -> User:
        """Apply a partial update. Omitted fields are left untouched.

        A new password is always hashed in the current format, which also
        retires any legacy credential the user had.
        Raises UserNotFoundError if no user matches.
        """
        current = self.find(username)
        if current is None:
            raise UserNotFoundError(username)

        changes: dict = {}
        if display_name is not None:
            changes["display_name"] = display_name.strip() or current.username
        if role is not None:
            changes["role"] = _coerce_role(role)
        if password is not None:
            if not password:
                raise ValueError("Password must not be empty")
            changes["password_hash"] = await asyncio.to_thread(hash_password, password)

        # Look the record up again: the list may have changed while hashing.
        current = self.find(username)
        if current is None:
            raise UserNotFoundError(username)
        updated = replace(current, **changes)
        self._users = [updated if u.key == current.key else u for u in self._users]
        self._commit()
        logger.info("User %s updated (%s)", updated.username, ", ".join(sorted(changes)) or "no changes")
        return updated

    def remove(self, username: str) -> None:
        """Delete a user. Removing an unknown username is a no-op locally.

        The remote delete is still scheduled so a document another device left
        behind under that name does not linger.
        """
        existing = self.find(username)
        doc_id = existing.username if existing is not None else (username or "").strip()
        if existing is not None:
            self._users = [u for u in self._users if u.key != existing.key]
            self._local.set(USERS_KEY, dump_users(self._users))
            logger.info("User %s removed", existing.username)
        if doc_id and self._mirror is not None:
            self._mirror.delete_remote(doc_id)

    async def ensure_default_user(self) -> Optional[User]:
        """Seed the first admin if, and only if, the directory is empty.

        Returns the seeded user, or None when users already exist. The
        credential is the legacy single-password hash when an older client
        left one in local storage, otherwise a fresh hash of the configured
        default password.
        """
        if self._users:
            return None

        settings = get_settings()
        legacy_hash = (self._local.get(LEGACY_PASSWORD_HASH_KEY) or "").strip()
        if legacy_hash:
            password_hash = legacy_hash
            source = "migrated legacy password"
        else:
            password_hash = await asyncio.to_thread(hash_password, settings.default_admin_password)
            source = "default password"

        if self._users:
            return None
        user = User(
            username=DEFAULT_ADMIN_USERNAME,
            display_name=settings.default_admin_display_name,
            role=Role.admin,
            password_hash=password_hash,
        )
        self._users = [user]
        self._commit()
        logger.info("Seeded default admin user (%s)", source)
        return user

    def replace_all(self, users: list[User]) -> None:
        """Replace the whole directory (remote hydration). Persists locally, never pushes.

        Duplicate usernames in the incoming snapshot collapse to the first
        occurrence so the uniqueness invariant holds whatever the remote held.
        """
        seen: set[str] = set()
        deduped: list[User] = []
        for user in users:
            if user.key in seen:
                logger.warning("Dropping duplicate username %s from snapshot", user.username)
                continue
            seen.add(user.key)
            deduped.append(user)
        self._users = deduped
        self._local.set(USERS_KEY, dump_users(self._users))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _commit(self) -> None:
        """Persist the full directory locally, then schedule the remote push."""
        self._local.set(USERS_KEY, dump_users(self._users))
        if self._mirror is not None:
            self._mirror.push(self.list())
