"""
remote/mirror.py -- Best-effort replication of the user directory to the remote store.

Two directions, two very different contracts:

  pull()  -- awaited once at boot, before default-user seeding. If the remote
      collection holds any valid user, the whole local directory is replaced
      by that snapshot (whole-directory last-writer-wins, no per-record merge).
      A device joining an already-provisioned team therefore adopts the team's
      admin instead of seeding its own.

  push() / delete_remote() -- fire-and-forget. The directory calls them after
      its local write has committed; they schedule a detached asyncio task and
      return immediately. push() always sends the full user list, one document
      per username.

Failure policy: every remote error is caught and logged here. Nothing raised
by the document store ever reaches the directory or the login flow, and a
permanently unreachable remote leaves the system fully usable offline.

Ordering: scheduled operations run one at a time in scheduling order (an
asyncio.Lock serializes them), so a delete scheduled after a push is never
overtaken by that push's upsert.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from auth.models import User
from auth.schemas import UserDocument, parse_users
from remote.firestore import DocumentStore

if TYPE_CHECKING:
    from auth.directory import UserDirectory

logger = logging.getLogger("workdesk.mirror")

DEFAULT_COLLECTION = "app_users"


class RemoteMirror:
    """Synchronizes a UserDirectory with one remote collection.

    remote=None means no remote is configured: pull() is a no-op and push /
    delete are dropped with a debug log.
    """

    def __init__(self, remote: Optional[DocumentStore], collection: str = DEFAULT_COLLECTION) -> None:
        self._remote = remote
        self.collection = collection
        self._pending: set[asyncio.Task] = set()
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def enabled(self) -> bool:
        return self._remote is not None

    @property
    def pending(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Pull (awaited)
    # ------------------------------------------------------------------

    async def pull(self, directory: UserDirectory) -> bool:
        """Hydrate directory from the remote snapshot. Returns True if it was replaced."""
        if self._remote is None:
            logger.debug("Remote sync disabled; skipping pull")
            return False
        try:
            raws = await self._remote.list(self.collection)
        except Exception as e:
            logger.warning("Pull from %s failed, keeping local directory: %s", self.collection, e)
            return False

        users = parse_users(raws, source=f"remote:{self.collection}")
        if not users:
            logger.info("Remote collection %s is empty; keeping local directory", self.collection)
            return False

        directory.replace_all(users)
        logger.info("Local directory hydrated from %s (%d user(s))", self.collection, len(directory.list()))
        return True

    # ------------------------------------------------------------------
    # Push / delete (detached)
    # ------------------------------------------------------------------

    def push(self, users: list[User]) -> None:
        """Schedule an upsert of every given user. Returns immediately."""
        if self._remote is None:
            logger.debug("Remote sync disabled; dropping push of %d user(s)", len(users))
            return
        snapshot = [UserDocument.from_user(u).to_wire() for u in users]
        self._schedule(lambda: self._push(snapshot), f"push of {len(snapshot)} user(s)")

    def delete_remote(self, username: str) -> None:
        """Schedule removal of the remote document for username. Returns immediately."""
        if self._remote is None:
            logger.debug("Remote sync disabled; dropping delete of %s", username)
            return
        self._schedule(lambda: self._delete(username), f"delete of {username}")

    async def drain(self) -> None:
        """Wait for every scheduled remote operation to finish. Never raises."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule(self, op: Callable[[], Awaitable[Any]], label: str) -> None:
        # One lock per event loop: it must belong to the loop that runs the tasks.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; remote %s to %s skipped", label, self.collection)
            return
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        lock = self._lock

        async def _run() -> None:
            async with lock:
                try:
                    await op()
                except Exception as e:
                    logger.warning("Remote %s to %s failed: %s", label, self.collection, e)

        task = loop.create_task(_run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(self, docs: list[dict[str, str]]) -> None:
        for doc in docs:
            await self._remote.upsert(self.collection, doc["username"], doc)
        logger.debug("Pushed %d user document(s) to %s", len(docs), self.collection)

    async def _delete(self, username: str) -> None:
        await self._remote.delete(self.collection, username)
        logger.debug("Deleted remote document %s/%s", self.collection, username)
