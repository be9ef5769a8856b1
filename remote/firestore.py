"""
remote/firestore.py -- Shared remote document store over the Firestore REST API.

The directory mirror needs three operations on one collection: list every
document, upsert one document by id, delete one document by id. This module
provides exactly that against Cloud Firestore's REST endpoint, so the Python
client shares the same collection as every other client of the team database.

Wire format: Firestore wraps each field in a typed value object
({"stringValue": "bob"}). _encode_fields / _decode_fields translate between
that and plain dicts. Only scalar types are handled -- user documents are flat.

Failure semantics: every transport, HTTP, or JSON failure is raised as
RemoteStoreError. This module does not decide whether a failure matters;
remote/mirror.py catches and logs them so they never reach the directory.

Blocking I/O: requests is synchronous, so each public coroutine hands the HTTP
call to asyncio.to_thread(). Callers see an awaitable interface.

Layer rule: no imports from api/, auth/, or storage/.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol
from urllib.parse import quote

import requests

logger = logging.getLogger("workdesk.remote")

_PAGE_SIZE = 300


class RemoteStoreError(Exception):
    """Any failure talking to the remote document store."""


class DocumentStore(Protocol):
    """The remote collaborator the mirror depends on."""

    async def list(self, collection: str) -> list[dict[str, Any]]: ...

    async def upsert(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...


# ---------------------------------------------------------------------------
# Typed value mapping
# ---------------------------------------------------------------------------


def _encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        # Firestore transports int64 as a decimal string.
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    return {"stringValue": str(value)}


def _decode_value(value: dict[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "nullValue" in value:
        return None
    # Maps, arrays, timestamps: not part of a user document. Keep the raw form.
    return value


def _encode_fields(doc: dict[str, Any]) -> dict[str, Any]:
    return {"fields": {k: _encode_value(v) for k, v in doc.items()}}


def _decode_fields(document: dict[str, Any]) -> dict[str, Any]:
    fields = document.get("fields") or {}
    return {k: _decode_value(v) for k, v in fields.items() if isinstance(v, dict)}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class FirestoreDocumentStore:
    """Async-facing Firestore REST client for flat documents.

    Usage:
        remote = FirestoreDocumentStore("my-project", api_key="...")
        docs = await remote.list("app_users")
        await remote.upsert("app_users", "bob", {"username": "bob", ...})
        await remote.delete("app_users", "bob")
        remote.close()
    """

    def __init__(
        self,
        project_id: str,
        api_key: str = "",
        *,
        base_url: str = "https://firestore.googleapis.com/v1",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not project_id:
            raise ValueError("project_id is required")
        self.project_id = project_id
        self._api_key = api_key or None
        self._root = f"{base_url.rstrip('/')}/projects/{quote(project_id, safe='')}/databases/(default)/documents"
        self._timeout = timeout
        # One session per client for connection pooling. Known endpoint, so a
        # short redirect budget is plenty.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    # ------------------------------------------------------------------
    # Public coroutine interface
    # ------------------------------------------------------------------

    async def list(self, collection: str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._list_sync, collection)

    async def upsert(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        await asyncio.to_thread(self._upsert_sync, collection, doc_id, doc)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, collection, doc_id)

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _collection_url(self, collection: str) -> str:
        return f"{self._root}/{quote(collection, safe='')}"

    def _document_url(self, collection: str, doc_id: str) -> str:
        if not doc_id:
            raise RemoteStoreError("Document id must not be empty")
        return f"{self._collection_url(collection)}/{quote(doc_id, safe='')}"

    def _params(self, **extra: Any) -> dict[str, Any]:
        params = {k: v for k, v in extra.items() if v is not None}
        if self._api_key:
            params["key"] = self._api_key
        return params

    def _list_sync(self, collection: str) -> list[dict[str, Any]]:
        docs: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        url = self._collection_url(collection)
        while True:
            try:
                resp = self._session.get(
                    url,
                    params=self._params(pageSize=_PAGE_SIZE, pageToken=page_token),
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                body = resp.json()
            except (requests.RequestException, ValueError) as e:
                raise RemoteStoreError(f"Listing {collection!r} failed: {e}") from e
            for document in body.get("documents") or []:
                docs.append(_decode_fields(document))
            page_token = body.get("nextPageToken")
            if not page_token:
                break
        logger.debug("Listed %d document(s) from %s", len(docs), collection)
        return docs

    def _upsert_sync(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        url = self._document_url(collection, doc_id)
        try:
            resp = self._session.patch(url, params=self._params(), json=_encode_fields(doc), timeout=self._timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise RemoteStoreError(f"Upserting {collection}/{doc_id} failed: {e}") from e

    def _delete_sync(self, collection: str, doc_id: str) -> None:
        url = self._document_url(collection, doc_id)
        try:
            resp = self._session.delete(url, params=self._params(), timeout=self._timeout)
            if resp.status_code == 404:
                return
            resp.raise_for_status()
        except requests.RequestException as e:
            raise RemoteStoreError(f"Deleting {collection}/{doc_id} failed: {e}") from e
