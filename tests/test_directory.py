"""Unit tests for auth/directory.py -- the user directory repository.

Covers:
- add(): case-insensitive uniqueness, stored casing kept, display name fallback,
  input validation (empty username/password, unknown role)
- find(): case-insensitive, whitespace-tolerant
- update(): partial updates, password re-hash, UserNotFoundError
- remove(): idempotent, remote delete uses the stored casing
- ensure_default_user(): seeds once, migrates a legacy single-password hash
- replace_all(): dedups, persists, never pushes
- Persistence: a second directory over the same store sees the same users
- Corrupted stored directory loads as empty
"""

import asyncio

import pytest

from auth.directory import LEGACY_PASSWORD_HASH_KEY, USERS_KEY, UserDirectory
from auth.errors import DuplicateUsernameError, UserNotFoundError
from auth.hashing import legacy_sha256, verify_password
from auth.models import Role
from remote.mirror import RemoteMirror


@pytest.fixture
def mirror(fake_remote) -> RemoteMirror:
    return RemoteMirror(fake_remote)


@pytest.fixture
def directory(local, mirror) -> UserDirectory:
    return UserDirectory(local, mirror=mirror)


class TestAdd:
    def test_add_and_find_case_insensitive(self, directory) -> None:
        user = asyncio.run(directory.add("Bob", "Bob B", "engineer", "longpassword1"))
        assert user.username == "Bob"
        assert directory.find("bob") == user
        assert directory.find("  BOB ") == user
        assert verify_password("longpassword1", user.password_hash)

    def test_duplicate_differing_only_in_case(self, directory) -> None:
        asyncio.run(directory.add("bob", "Bob", Role.engineer, "pw"))
        with pytest.raises(DuplicateUsernameError):
            asyncio.run(directory.add("BOB", "Other Bob", Role.manager, "pw"))
        assert len(directory) == 1

    def test_display_name_defaults_to_username(self, directory) -> None:
        user = asyncio.run(directory.add("carol", "  ", Role.manager, "pw"))
        assert user.display_name == "carol"

    def test_role_string_is_normalized(self, directory) -> None:
        user = asyncio.run(directory.add("dave", "Dave", " Manager ", "pw"))
        assert user.role is Role.manager

    @pytest.mark.parametrize(
        "username, role, password",
        [("", "engineer", "pw"), ("   ", "engineer", "pw"), ("eve", "engineer", ""), ("eve", "intern", "pw")],
    )
    def test_invalid_input(self, directory, username, role, password) -> None:
        with pytest.raises(ValueError):
            asyncio.run(directory.add(username, "Eve", role, password))
        assert len(directory) == 0

    def test_add_persists_and_pushes(self, directory, local, fake_remote) -> None:
        async def scenario():
            await directory.add("bob", "Bob", Role.engineer, "pw")
            await directory._mirror.drain()

        asyncio.run(scenario())
        assert '"username": "bob"' in local.get(USERS_KEY)
        assert fake_remote.docs()["bob"]["displayName"] == "Bob"


class TestUpdate:
    def test_partial_update_keeps_other_fields(self, directory) -> None:
        original = asyncio.run(directory.add("bob", "Bob", Role.engineer, "pw"))
        updated = asyncio.run(directory.update("BOB", role="manager"))
        assert updated.role is Role.manager
        assert updated.display_name == "Bob"
        assert updated.password_hash == original.password_hash
        assert updated.username == "bob"

    def test_password_change_rehashes(self, directory) -> None:
        asyncio.run(directory.add("bob", "Bob", Role.engineer, "old-pw"))
        updated = asyncio.run(directory.update("bob", password="new-pw"))
        assert verify_password("new-pw", updated.password_hash)
        assert not verify_password("old-pw", updated.password_hash)

    def test_unknown_user(self, directory) -> None:
        with pytest.raises(UserNotFoundError):
            asyncio.run(directory.update("ghost", display_name="Ghost"))


class TestRemove:
    def test_remove_twice_is_idempotent(self, directory) -> None:
        asyncio.run(directory.add("bob", "Bob", Role.engineer, "pw"))
        directory.remove("bob")
        directory.remove("bob")
        assert directory.find("bob") is None
        assert len(directory) == 0

    def test_remote_delete_uses_stored_casing(self, directory, fake_remote) -> None:
        async def scenario():
            await directory.add("Bob", "Bob", Role.engineer, "pw")
            directory.remove("bob")
            await directory._mirror.drain()

        asyncio.run(scenario())
        assert ("delete", "app_users", "Bob") in fake_remote.calls
        assert "Bob" not in fake_remote.docs()

    def test_remove_unknown_still_deletes_remotely(self, directory, fake_remote) -> None:
        async def scenario():
            directory.remove("stale")
            await directory._mirror.drain()

        asyncio.run(scenario())
        assert ("delete", "app_users", "stale") in fake_remote.calls


class TestSeeding:
    def test_seeds_admin_once(self, directory) -> None:
        seeded = asyncio.run(directory.ensure_default_user())
        assert seeded is not None
        assert seeded.username == "admin"
        assert seeded.role is Role.admin
        assert verify_password("admin", seeded.password_hash)

        assert asyncio.run(directory.ensure_default_user()) is None
        assert len(directory) == 1

    def test_not_seeded_when_users_exist(self, directory) -> None:
        asyncio.run(directory.add("bob", "Bob", Role.engineer, "pw"))
        assert asyncio.run(directory.ensure_default_user()) is None
        assert directory.find("admin") is None

    def test_legacy_password_hash_becomes_admin_credential(self, local) -> None:
        local.set(LEGACY_PASSWORD_HASH_KEY, legacy_sha256("team-secret"))
        directory = UserDirectory(local)
        seeded = asyncio.run(directory.ensure_default_user())
        assert seeded.password_hash == legacy_sha256("team-secret")
        assert verify_password("team-secret", seeded.password_hash)
        # Read-only: the legacy key is never rewritten here.
        assert local.get(LEGACY_PASSWORD_HASH_KEY) == legacy_sha256("team-secret")


class TestReplaceAll:
    def test_dedups_and_does_not_push(self, directory, fake_remote, user_factory) -> None:
        directory.replace_all([user_factory("bob"), user_factory("BOB", role=Role.admin), user_factory("carol")])
        assert [u.username for u in directory.list()] == ["bob", "carol"]
        assert fake_remote.calls == []

    def test_persists(self, directory, local, user_factory) -> None:
        directory.replace_all([user_factory("bob")])
        assert UserDirectory(local).find("bob") is not None


class TestPersistence:
    def test_second_directory_sees_users(self, directory, local) -> None:
        asyncio.run(directory.add("bob", "Bob", Role.engineer, "pw"))
        reopened = UserDirectory(local)
        assert reopened.find("BOB").display_name == "Bob"

    def test_corrupted_directory_loads_empty(self, local) -> None:
        local.set(USERS_KEY, "{not json")
        assert len(UserDirectory(local)) == 0

    def test_malformed_records_skipped(self, local) -> None:
        local.set(
            USERS_KEY,
            '[{"username": "bob", "displayName": "Bob", "role": "engineer", "passwordHash": "x"},'
            ' {"username": "", "role": "engineer", "passwordHash": "x"},'
            ' {"username": "zed", "role": "janitor", "passwordHash": "x"}]',
        )
        directory = UserDirectory(local)
        assert [u.username for u in directory.list()] == ["bob"]
