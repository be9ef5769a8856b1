"""Tests for auth/flow.py -- boot sequence and login/logout state machine.

These drive a complete AuthRuntime (local store + fake remote + mirror +
directory + sessions) because the interesting behavior lives in how the
pieces are ordered, not in any single one.

Covers:
- Boot on an empty device seeds "admin" and starts logged out
- Boot pulls before seeding: a provisioned remote wins, no admin is forked
- Boot restores a stored session
- Boot with a failing remote still seeds and logs in offline
- Login: success, wrong password, unknown user (same error), case-insensitive name
- Login while logged in switches user; login while authenticating is rejected
- remove_user refuses the only admin and the logged-in account
- Legacy credential is upgraded to PBKDF2 after a successful login
- Active session is unaffected by deleting or re-roling its user
- change_password() and is_using_default_password()
- End to end: admin adds bob, logs out, bob logs in, remote holds bob
"""

import asyncio

import pytest

from auth.directory import LEGACY_PASSWORD_HASH_KEY
from auth.errors import CannotDeleteSelfError, InvalidCredentialsError, LastAdminError, LoginInProgressError
from auth.hashing import legacy_sha256
from auth.models import AuthState, Role
from auth.runtime import build_runtime
from auth.schemas import UserDocument
from storage.local import LocalStore


def _seed_remote(fake_remote, *users) -> None:
    for user in users:
        fake_remote.docs()[user.username] = UserDocument.from_user(user).to_wire()


class TestBoot:
    def test_empty_device_seeds_admin(self, runtime, fake_remote) -> None:
        async def scenario():
            session = await runtime.authenticator.boot()
            await runtime.mirror.drain()
            return session

        assert asyncio.run(scenario()) is None
        assert runtime.authenticator.state is AuthState.logged_out
        assert [u.username for u in runtime.directory.list()] == ["admin"]
        assert "admin" in fake_remote.docs()

    def test_pull_happens_before_seeding(self, runtime, fake_remote, user_factory) -> None:
        _seed_remote(fake_remote, user_factory("bob", role=Role.admin))
        asyncio.run(runtime.authenticator.boot())
        assert [u.username for u in runtime.directory.list()] == ["bob"]
        assert runtime.directory.find("admin") is None

    def test_seeding_is_idempotent_across_boots(self, runtime) -> None:
        asyncio.run(runtime.authenticator.boot())
        first = runtime.directory.find("admin")
        asyncio.run(runtime.authenticator.boot())
        assert len(runtime.directory) == 1
        assert runtime.directory.find("admin") == first

    def test_failing_remote_still_usable(self, runtime, fake_remote) -> None:
        fake_remote.fail = True

        async def scenario():
            await runtime.authenticator.boot()
            session = await runtime.authenticator.login("admin", "admin")
            await runtime.mirror.drain()
            return session

        assert asyncio.run(scenario()).role is Role.admin

    def test_restores_stored_session(self, local, fake_remote) -> None:
        first = build_runtime(local=local, remote=fake_remote)

        async def login():
            await first.authenticator.boot()
            await first.authenticator.login("admin", "admin")

        asyncio.run(login())

        second = build_runtime(local=local, remote=fake_remote)
        restored = asyncio.run(second.authenticator.boot())
        assert restored.username == "admin"
        assert second.authenticator.state is AuthState.logged_in


class TestLogin:
    def test_success(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            return await auth.login("ADMIN", "admin")

        session = asyncio.run(scenario())
        assert session.username == "admin"
        assert auth.state is AuthState.logged_in
        assert auth.current() == session

    def test_wrong_password_and_unknown_user_look_the_same(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator
        asyncio.run(auth.boot())

        with pytest.raises(InvalidCredentialsError) as wrong:
            asyncio.run(auth.login("admin", "nope"))
        with pytest.raises(InvalidCredentialsError) as unknown:
            asyncio.run(auth.login("nobody", "admin"))
        assert str(wrong.value) == str(unknown.value)
        assert auth.state is AuthState.logged_out
        assert auth.current() is None

    def test_login_while_logged_in_switches_user(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.directory.add("bob", "Bob", Role.engineer, "longpassword1")
            await auth.login("admin", "admin")
            return await auth.login("bob", "longpassword1")

        assert asyncio.run(scenario()).username == "bob"
        assert auth.current().username == "bob"

    def test_failed_switch_leaves_logged_out(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.login("admin", "admin")
            await auth.login("admin", "wrong")

        with pytest.raises(InvalidCredentialsError):
            asyncio.run(scenario())
        assert auth.current() is None

    def test_rejects_concurrent_attempt(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator
        asyncio.run(auth.boot())
        auth._state = AuthState.authenticating
        with pytest.raises(LoginInProgressError):
            asyncio.run(auth.login("admin", "admin"))

    def test_overlapping_attempts(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            return await asyncio.gather(
                auth.login("admin", "admin"),
                auth.login("admin", "admin"),
                return_exceptions=True,
            )

        first, second = asyncio.run(scenario())
        assert first.username == "admin"
        assert isinstance(second, LoginInProgressError)
        assert auth.state is AuthState.logged_in
        assert auth.current() == first

    def test_logout(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.login("admin", "admin")

        asyncio.run(scenario())
        auth.logout()
        assert auth.state is AuthState.logged_out
        assert not auth.is_authenticated()
        assert offline_runtime.directory.find("admin") is not None

    def test_legacy_credential_upgraded(self, local, fake_remote) -> None:
        local.set(LEGACY_PASSWORD_HASH_KEY, legacy_sha256("team-secret"))
        rt = build_runtime(local=local, remote=fake_remote)

        async def scenario():
            await rt.authenticator.boot()
            await rt.authenticator.login("admin", "team-secret")
            await rt.mirror.drain()

        asyncio.run(scenario())
        admin = rt.directory.find("admin")
        assert admin.password_hash.startswith("pbkdf2:")
        assert fake_remote.docs()["admin"]["passwordHash"] == admin.password_hash
        # The new credential still accepts the same password.
        rt.authenticator.logout()
        assert asyncio.run(rt.authenticator.login("admin", "team-secret")).username == "admin"


class TestSessionIndependence:
    def test_deleting_user_keeps_active_session(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.directory.add("bob", "Bob", Role.engineer, "longpassword1")
            await auth.login("bob", "longpassword1")

        asyncio.run(scenario())
        auth.directory.remove("bob")
        assert auth.current().username == "bob"

        auth.logout()
        with pytest.raises(InvalidCredentialsError):
            asyncio.run(auth.login("bob", "longpassword1"))

    def test_role_change_visible_after_next_login(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.directory.add("bob", "Bob", Role.engineer, "longpassword1")
            await auth.login("bob", "longpassword1")
            await auth.directory.update("bob", role=Role.manager)

        asyncio.run(scenario())
        assert auth.current().role is Role.engineer
        auth.logout()
        assert asyncio.run(auth.login("bob", "longpassword1")).role is Role.manager


class TestPasswords:
    def test_default_password_detection(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator
        asyncio.run(auth.boot())
        assert asyncio.run(auth.is_using_default_password()) is True

        asyncio.run(auth.change_password("admin", "admin", "a-better-password"))
        assert asyncio.run(auth.is_using_default_password()) is False

    def test_change_password_requires_current(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator
        asyncio.run(auth.boot())
        with pytest.raises(InvalidCredentialsError):
            asyncio.run(auth.change_password("admin", "wrong", "new-password"))
        with pytest.raises(ValueError):
            asyncio.run(auth.change_password("admin", "admin", ""))

    def test_no_admin_means_no_default_password(self, offline_runtime, user_factory) -> None:
        offline_runtime.directory.replace_all([user_factory("bob")])
        assert asyncio.run(offline_runtime.authenticator.is_using_default_password()) is False


def test_end_to_end_second_device(fake_remote, local) -> None:
    """Admin on device A adds bob; device B boots from the remote and bob logs in there."""
    device_a = build_runtime(local=local, remote=fake_remote)

    async def on_device_a():
        await device_a.authenticator.boot()
        await device_a.authenticator.login("admin", "admin")
        await device_a.directory.add("bob", "Bob B", Role.engineer, "longpassword1")
        device_a.authenticator.logout()
        await device_a.mirror.drain()

    asyncio.run(on_device_a())
    assert set(fake_remote.docs()) == {"admin", "bob"}

    other_store = LocalStore("sqlite:///:memory:")
    try:
        device_b = build_runtime(local=other_store, remote=fake_remote)

        async def on_device_b():
            await device_b.authenticator.boot()
            return await device_b.authenticator.login("Bob", "longpassword1")

        session = asyncio.run(on_device_b())
        assert session.display_name == "Bob B"
        assert session.role is Role.engineer
        # Device A's session slot is untouched by device B.
        assert device_a.authenticator.current() is None
    finally:
        other_store.close()


def test_bob_scenario(offline_runtime) -> None:
    auth = offline_runtime.authenticator

    async def scenario():
        await auth.boot()
        await auth.directory.add("bob", "Bob B", "engineer", "longpassword1")
        return await auth.login("bob", "longpassword1")

    assert asyncio.run(scenario()).role is Role.engineer
    assert auth.current().role is Role.engineer

    with pytest.raises(InvalidCredentialsError) as wrong:
        asyncio.run(auth.login("bob", "wrongpass"))
    with pytest.raises(InvalidCredentialsError) as unknown:
        asyncio.run(auth.login("nobody", "anything"))
    assert type(wrong.value) is type(unknown.value)
    assert str(wrong.value) == str(unknown.value)


def test_remove_on_empty_directory(offline_runtime) -> None:
    offline_runtime.directory.remove("nobody")
    assert len(offline_runtime.directory) == 0


class TestRemoveUser:
    def test_refuses_only_admin(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.change_password("admin", "admin", "s3cret-long")

        asyncio.run(scenario())
        with pytest.raises(LastAdminError):
            auth.remove_user("ADMIN")
        assert len(offline_runtime.directory) == 1
        # Nothing to re-seed on the next boot, so the default password never returns.
        asyncio.run(auth.boot())
        assert asyncio.run(auth.is_using_default_password()) is False

    def test_refuses_logged_in_account(self, offline_runtime) -> None:
        auth = offline_runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.directory.add("root", "Root", Role.admin, "longpassword1")
            await auth.login("admin", "admin")

        asyncio.run(scenario())
        with pytest.raises(CannotDeleteSelfError):
            auth.remove_user("admin")
        assert auth.directory.find("admin") is not None

    def test_removes_other_users(self, runtime, fake_remote) -> None:
        auth = runtime.authenticator

        async def scenario():
            await auth.boot()
            await auth.directory.add("root", "Root", Role.admin, "longpassword1")
            await auth.directory.add("bob", "Bob", Role.engineer, "longpassword1")
            await auth.login("root", "longpassword1")
            auth.remove_user("bob")
            auth.remove_user("admin")
            auth.remove_user("ghost")
            await runtime.mirror.drain()

        asyncio.run(scenario())
        assert [u.username for u in runtime.directory.list()] == ["root"]
        assert set(fake_remote.docs()) == {"root"}
