"""
storage/local.py -- SQLAlchemy-backed key/string store for device-local state.

Holds everything that must survive a restart on this device but is never
shared with other devices: the serialized user directory, the current
session, per-role permission overrides, and the legacy single-password
credential written by older clients.

The interface is get / set / remove on string values, so
callers own their own serialization. Values are opaque text to this layer.

Usage:
    local = LocalStore()                      # SQLite file beside the package
    local = LocalStore("sqlite:///:memory:")  # tests
    local.set("app_users", "[]")
    raw = local.get("app_users")              # returns str or None
    local.remove("app_users")
    local.close()

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/, auth/, or remote/.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, delete, event, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from core.config import get_settings

logger = logging.getLogger("workdesk.storage")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_kv = Table(
    "kv",
    _metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so a crash mid-write never corrupts the file."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class LocalStore:
    """Synchronous key/string store. Every write is committed before returning."""

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        engine_kwargs: dict = {}
        in_memory = ":memory:" in db_url or "mode=memory" in db_url
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if in_memory:
                # One shared connection, otherwise each thread sees its own empty database.
                engine_kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite") and not in_memory:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        logger.debug("Local store ready at %s", self.engine.url)

    def get(self, key: str) -> Optional[str]:
        """Return the stored value for key, or None if it was never set."""
        with self.engine.connect() as conn:
            row = conn.execute(select(_kv.c.value).where(_kv.c.key == key)).fetchone()
        return row[0] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any existing value."""
        with self.engine.begin() as conn:
            result = conn.execute(update(_kv).where(_kv.c.key == key).values(value=value))
            if result.rowcount == 0:
                conn.execute(insert(_kv).values(key=key, value=value))

    def remove(self, key: str) -> None:
        """Delete key. Removing a key that does not exist is a no-op."""
        with self.engine.begin() as conn:
            conn.execute(delete(_kv).where(_kv.c.key == key))

    def keys(self) -> list[str]:
        """Return every stored key, sorted. Used by diagnostics and tests."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(_kv.c.key).order_by(_kv.c.key)).fetchall()
        return [r[0] for r in rows]

    def close(self) -> None:
        self.engine.dispose()
