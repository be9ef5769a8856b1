"""
auth/errors.py -- Exceptions raised by the directory and the login flow.

Remote sync failures are absent: they are caught and logged
inside remote/mirror.py and never reach a caller of auth/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for recoverable auth/directory errors surfaced to the UI."""

    code = "auth_error"


class InvalidCredentialsError(AuthError):
    """Unknown username or wrong password. The message never says which."""

    code = "bad_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid username or password.")


class DuplicateUsernameError(AuthError):
    code = "duplicate_username"

    def __init__(self, username: str) -> None:
        super().__init__(f"A user named {username!r} already exists.")
        self.username = username


class UserNotFoundError(AuthError):
    code = "user_not_found"

    def __init__(self, username: str) -> None:
        super().__init__(f"No user named {username!r}.")
        self.username = username


class LoginInProgressError(AuthError):
    """Another login attempt on this device has not finished yet."""

    code = "login_in_progress"

    def __init__(self) -> None:
        super().__init__("A login attempt is already in progress.")


class LastAdminError(AuthError):
    code = "last_admin"

    def __init__(self, username: str) -> None:
        super().__init__(f"{username!r} is the only admin and cannot be removed.")
        self.username = username


class CannotDeleteSelfError(AuthError):
    code = "cannot_delete_self"

    def __init__(self, username: str) -> None:
        super().__init__(f"{username!r} is logged in on this device and cannot be removed.")
        self.username = username
