"""
auth/flow.py -- Login/logout state machine and the boot sequence.

States:
  logged_out --login()--> authenticating --ok--> logged_in
                                         --fail--> logged_out
  logged_in  --logout()--> logged_out

A login attempt succeeds iff the directory finds the username AND the stored
credential verifies. Unknown username and wrong password raise the same
InvalidCredentialsError, and an unknown username still pays for one PBKDF2
verification against DUMMY_CREDENTIAL, so neither the message nor the timing
tells a caller which part was wrong.

Boot order (every start, before the UI decides what to show):
  1. mirror.pull(directory)        -- adopt the team's directory if one exists
  2. directory.ensure_default_user -- seed "admin" only if still empty
  3. sessions.current()            -- restore logged_in / logged_out

Step 1 must complete before step 2. Seeding first would let two devices each
create their own "admin" with different passwords.

Sessions are a copy taken at login. Deleting or editing the user afterwards
leaves the active session as it is until the next logout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from auth.directory import DEFAULT_ADMIN_USERNAME, UserDirectory
from auth.errors import CannotDeleteSelfError, InvalidCredentialsError, LastAdminError, LoginInProgressError
from auth.hashing import DUMMY_CREDENTIAL, needs_rehash, verify_password
from auth.models import AuthState, Role, Session, User, normalize_username
from auth.session import SessionManager
from core.config import get_settings
from remote.mirror import RemoteMirror

logger = logging.getLogger("workdesk.auth")


class Authenticator:
    """Composes directory, sessions and mirror into the contract the UI uses.

    Usage:
        auth = Authenticator(directory, sessions, mirror)
        await auth.boot()
        session = await auth.login("bob", "longpassword1")
        auth.logout()
    """

    def __init__(self, directory: UserDirectory, sessions: SessionManager, mirror: RemoteMirror) -> None:
        self.directory = directory
        self.sessions = sessions
        self.mirror = mirror
        self._state = AuthState.logged_in if sessions.is_authenticated() else AuthState.logged_out

    @property
    def state(self) -> AuthState:
        return self._state

    def current(self) -> Optional[Session]:
        return self.sessions.current()

    def is_authenticated(self) -> bool:
        return self.sessions.is_authenticated()

    # ------------------------------------------------------------------
    # Boot
    # ------------------------------------------------------------------

    async def boot(self) -> Optional[Session]:
        """Run the startup sequence and return the restored session, if any."""
        await self.mirror.pull(self.directory)
        await self.directory.ensure_default_user()
        session = self.sessions.current()
        self._state = AuthState.logged_in if session is not None else AuthState.logged_out
        logger.info(
            "Auth booted (users=%d, remote=%s, state=%s)",
            len(self.directory),
            "on" if self.mirror.enabled else "off",
            self._state.value,
        )
        return session

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def login(self, username: str, password: str) -> Session:
        """Authenticate and start a session. Raises InvalidCredentialsError on any failure.

        Logging in while a session is active ends that session before the new
        credentials are checked, so a failed switch leaves the device logged out.
        Raises LoginInProgressError while another attempt is still authenticating.
        """
        if self._state is AuthState.authenticating:
            raise LoginInProgressError()
        if self.sessions.is_authenticated():
            self.logout()

        self._state = AuthState.authenticating
        try:
            user = await self._verify(username, password)
        except BaseException:
            self._state = AuthState.logged_out
            raise
        if user is None:
            self._state = AuthState.logged_out
            logger.info("Login failed")
            raise InvalidCredentialsError()

        session = self.sessions.login(user)
        self._state = AuthState.logged_in
        if needs_rehash(user.password_hash):
            await self._upgrade_credential(user, password)
        return session

    def logout(self) -> None:
        """End the current session. Never touches the directory."""
        self.sessions.logout()
        self._state = AuthState.logged_out

    # ------------------------------------------------------------------
    # Directory guards
    # ------------------------------------------------------------------

    def remove_user(self, username: str) -> None:
        """Remove a user unless that would lock the team out.

        Refuses the only admin (an empty directory is re-seeded with the
        default password on the next boot) and the account logged in on this
        device. Unknown usernames fall through to the idempotent remove.
        """
        target = self.directory.find(username)
        if target is not None:
            admins = [u for u in self.directory.list() if u.role is Role.admin]
            if target.role is Role.admin and len(admins) == 1:
                raise LastAdminError(target.username)
            session = self.sessions.current()
            if session is not None and normalize_username(session.username) == target.key:
                raise CannotDeleteSelfError(target.username)
        self.directory.remove(username)

    # ------------------------------------------------------------------
    # Password management
    # ------------------------------------------------------------------

    async def change_password(self, username: str, current_password: str, new_password: str) -> User:
        """Rotate a user's password after re-verifying the current one."""
        if not new_password:
            raise ValueError("New password must not be empty")
        user = await self._verify(username, current_password)
        if user is None:
            raise InvalidCredentialsError()
        return await self.directory.update(user.username, password=new_password)

    async def is_using_default_password(self) -> bool:
        """True if the admin account still accepts the configured default password."""
        admin = self.directory.find(DEFAULT_ADMIN_USERNAME)
        if admin is None:
            return False
        default = get_settings().default_admin_password
        return await asyncio.to_thread(verify_password, default, admin.password_hash)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _verify(self, username: str, password: str) -> Optional[User]:
        user = self.directory.find(username)
        if user is None:
            # Equalize timing -- do NOT return early before running PBKDF2.
            await asyncio.to_thread(verify_password, password or "", DUMMY_CREDENTIAL)
            return None
        if not await asyncio.to_thread(verify_password, password or "", user.password_hash):
            return None
        return user

    async def _upgrade_credential(self, user: User, password: str) -> None:
        """Re-hash a legacy credential into the current format after a good login."""
        try:
            await self.directory.update(user.username, password=password)
        except Exception:
            logger.exception("Could not upgrade legacy credential for %s", user.username)
        else:
            logger.info("Upgraded legacy credential for %s", user.username)
