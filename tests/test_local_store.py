"""Unit tests for storage/local.py -- the device-local key/string store.

Covers:
- get() on a missing key returns None
- set() inserts, then overwrites
- remove() deletes and is a no-op for unknown keys
- keys() lists stored keys sorted
- Values survive closing and reopening a file-backed store
"""

from storage.local import LocalStore


def test_get_missing_key_returns_none(local) -> None:
    assert local.get("app_users") is None


def test_set_then_overwrite(local) -> None:
    local.set("app_users", "[]")
    assert local.get("app_users") == "[]"
    local.set("app_users", '[{"username": "bob"}]')
    assert local.get("app_users") == '[{"username": "bob"}]'


def test_remove_is_idempotent(local) -> None:
    local.set("app_current_user", "{}")
    local.remove("app_current_user")
    local.remove("app_current_user")
    assert local.get("app_current_user") is None


def test_keys_sorted(local) -> None:
    local.set("b", "2")
    local.set("a", "1")
    assert local.keys() == ["a", "b"]


def test_file_store_survives_reopen(tmp_path) -> None:
    url = f"sqlite:///{tmp_path / 'local.db'}"
    first = LocalStore(url)
    first.set("app_users", "[]")
    first.close()

    second = LocalStore(url)
    try:
        assert second.get("app_users") == "[]"
    finally:
        second.close()
