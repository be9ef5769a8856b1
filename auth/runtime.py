"""
auth/runtime.py -- Assembles the auth components for an entry point.

The API lifespan and the CLI both need the same object graph: one local store,
an optional remote document store, the mirror, the directory, the session
manager, the permission table, and the Authenticator on top. build_runtime()
wires it from Settings; tests pass their own local/remote collaborators.

Shutdown order matters: drain the mirror first so queued pushes reach the
remote, then close the HTTP session and the local store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from auth.directory import UserDirectory
from auth.flow import Authenticator
from auth.permissions import PermissionTable
from auth.session import SessionManager
from core.config import Settings, get_settings
from remote.firestore import DocumentStore, FirestoreDocumentStore
from remote.mirror import RemoteMirror
from storage.local import LocalStore

logger = logging.getLogger("workdesk.auth")


@dataclass
class AuthRuntime:
    local: LocalStore
    remote: Optional[DocumentStore]
    mirror: RemoteMirror
    directory: UserDirectory
    sessions: SessionManager
    permissions: PermissionTable
    authenticator: Authenticator

    async def close(self) -> None:
        await self.mirror.drain()
        close_remote = getattr(self.remote, "close", None)
        if callable(close_remote):
            close_remote()
        self.local.close()


def build_runtime(
    settings: Optional[Settings] = None,
    *,
    local: Optional[LocalStore] = None,
    remote: Optional[DocumentStore] = None,
) -> AuthRuntime:
    """Wire every auth component. Nothing touches the network until boot()."""
    settings = settings or get_settings()
    local = local or LocalStore(settings.database_url)
    if remote is None and settings.remote_enabled:
        remote = FirestoreDocumentStore(
            settings.firebase_project_id,
            settings.firebase_api_key,
            base_url=settings.firestore_base_url,
            timeout=settings.remote_timeout_seconds,
        )
    if remote is None:
        logger.info("No remote document store configured; directory stays local to this device")

    mirror = RemoteMirror(remote, collection=settings.users_collection)
    directory = UserDirectory(local, mirror=mirror)
    sessions = SessionManager(local)
    return AuthRuntime(
        local=local,
        remote=remote,
        mirror=mirror,
        directory=directory,
        sessions=sessions,
        permissions=PermissionTable(local),
        authenticator=Authenticator(directory, sessions, mirror),
    )
