"""
auth/session.py -- Single-slot, device-local "who is logged in" state.

The slot lives in the local store, so it survives a restart of this process
but is never shared with other devices and never replicated remotely.

Each SessionManager is an explicit object over an injected LocalStore rather
than module-level state, so two managers over two stores (e.g. in tests)
never see each other's session.

A stored session that fails to parse or validate is treated as no session.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import ValidationError

from auth.models import Session, User
from auth.schemas import SessionDocument
from storage.local import LocalStore

logger = logging.getLogger("workdesk.session")

SESSION_KEY = "app_current_user"
# Keys earlier client versions used for the session flag. Cleared on logout so
# stale state cannot resurrect a session.
LEGACY_SESSION_KEYS = ("app_authenticated",)


class SessionManager:
    def __init__(self, local: LocalStore) -> None:
        self._local = local

    def login(self, user: User) -> Session:
        """Store a value copy of user as the current session and return it."""
        session = Session.from_user(user)
        payload = SessionDocument.from_session(session).model_dump(mode="json", by_alias=True)
        self._local.set(SESSION_KEY, json.dumps(payload, ensure_ascii=False))
        logger.info("Session started for %s", session.username)
        return session

    def current(self) -> Optional[Session]:
        raw = self._local.get(SESSION_KEY)
        if not raw:
            return None
        try:
            return SessionDocument.model_validate_json(raw).to_session()
        except ValidationError:
            logger.warning("Stored session is malformed; treating as logged out")
            return None

    def is_authenticated(self) -> bool:
        return self.current() is not None

    def logout(self) -> None:
        session = self.current()
        self._local.remove(SESSION_KEY)
        for key in LEGACY_SESSION_KEYS:
            self._local.remove(key)
        if session is not None:
            logger.info("Session ended for %s", session.username)
