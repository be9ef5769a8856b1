"""
tests/conftest.py -- Shared test fixtures for Workdesk auth tests.

This module provides:
  - FakeDocumentStore: in-process stand-in for the remote document store
  - local / fake_remote / runtime: isolated stores and a fully wired AuthRuntime
  - make_user(): builds a User with a real PBKDF2 credential
  - _patch_lifespan(): wires a test runtime into app.state, bypassing real startup
  - api_client: TestClient over the real FastAPI app with an isolated runtime

Design: LocalStore uses a StaticPool for "sqlite:///:memory:", so the single
in-memory database is shared by every thread, including the TestClient's
portal thread.

Async code is driven with asyncio.run() inside plain test functions. The
mirror creates its lock per event loop, so consecutive asyncio.run() calls in
one test are fine.

DEBUG must be set before any core import so Settings() does not warn about
the built-in default admin password on every instantiation.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Any, Optional

# Set before any core/auth import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.routes.v1.auth import limiter
from auth.hashing import hash_password
from auth.models import Role, User
from auth.runtime import AuthRuntime, build_runtime
from remote.firestore import RemoteStoreError
from storage.local import LocalStore

MEMORY_URL = "sqlite:///:memory:"


# ---------------------------------------------------------------------------
# Remote fake
# ---------------------------------------------------------------------------


class FakeDocumentStore:
    """Dict-backed DocumentStore. Set fail=True to make every call raise."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, Optional[str]]] = []
        self.fail = False

    def docs(self, collection: str = "app_users") -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(collection, {})

    async def list(self, collection: str) -> list[dict[str, Any]]:
        self.calls.append(("list", collection, None))
        if self.fail:
            raise RemoteStoreError("remote unavailable")
        return [dict(d) for d in self.docs(collection).values()]

    async def upsert(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        self.calls.append(("upsert", collection, doc_id))
        if self.fail:
            raise RemoteStoreError("remote unavailable")
        self.docs(collection)[doc_id] = dict(doc)

    async def delete(self, collection: str, doc_id: str) -> None:
        self.calls.append(("delete", collection, doc_id))
        if self.fail:
            raise RemoteStoreError("remote unavailable")
        self.docs(collection).pop(doc_id, None)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_user(username: str, password: str = "longpassword1", role: Role = Role.engineer, display_name: str = "") -> User:
    return User(
        username=username,
        display_name=display_name or username.title(),
        role=role,
        password_hash=hash_password(password),
    )


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def local() -> Generator[LocalStore, None, None]:
    store = LocalStore(MEMORY_URL)
    yield store
    store.close()


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def fake_remote() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def runtime(local: LocalStore, fake_remote: FakeDocumentStore) -> AuthRuntime:
    """A device with remote sync enabled against fake_remote."""
    return build_runtime(local=local, remote=fake_remote)


@pytest.fixture
def offline_runtime(local: LocalStore) -> AuthRuntime:
    """A device with no remote configured."""
    return build_runtime(local=local)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(runtime: AuthRuntime):
    """Return an async context manager that replaces the real lifespan.

    Runs the real boot sequence against the test runtime so routes see a
    seeded "admin"/"admin" account, then drains and closes on shutdown.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.runtime = runtime
        app.state.authenticator = runtime.authenticator
        app.state.permissions = runtime.permissions
        await runtime.authenticator.boot()
        yield
        await runtime.mirror.drain()

    return test_lifespan


@pytest.fixture
def api_client(fake_remote: FakeDocumentStore) -> Generator[tuple[TestClient, AuthRuntime], None, None]:
    """Yield (client, runtime) for API integration tests.

    Each test gets a fresh in-memory store, so the device starts logged out
    with only the seeded admin. The login rate limit is disabled here;
    tests that exercise it turn it back on explicitly.
    """
    store = LocalStore(MEMORY_URL)
    rt = build_runtime(local=store, remote=fake_remote)
    app.router.lifespan_context = _patch_lifespan(rt)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, rt

    limiter.enabled = True
    store.close()
