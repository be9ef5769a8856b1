#!/usr/bin/env python3
"""
Workdesk admin CLI -- manage the user directory from a terminal.

Every command runs the same boot sequence as the API (remote pull, default
admin seeding, session restore) before doing its work, and waits for queued
remote pushes before exiting.

Usage:
  python main.py users
  python main.py add-user bob --display-name "Bob B" --role engineer
  python main.py update-user bob --role manager
  python main.py update-user bob --password
  python main.py remove-user bob
  python main.py pull
  python main.py check-default

Passwords are always read with a hidden prompt, never from arguments.

Environment variables:
  FIREBASE_PROJECT_ID   Enables remote sync with the team's Firestore database.
  FIREBASE_API_KEY      Web API key for that project.
  DATABASE_URL          Local store location (default: workdesk_local.db).
"""

import argparse
import asyncio
import getpass
import logging
import sys
from typing import Optional

from auth.errors import CannotDeleteSelfError, DuplicateUsernameError, LastAdminError, UserNotFoundError
from auth.models import Role
from auth.runtime import AuthRuntime, build_runtime
from core.config import get_settings

logger = logging.getLogger("workdesk.cli")


def _prompt_password(confirm: bool = True) -> Optional[str]:
    """Read a password twice without echo. Returns None if empty or mismatched."""
    password = getpass.getpass("  Password: ")
    if not password:
        print("  [!] Password must not be empty.")
        return None
    if confirm and getpass.getpass("  Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return None
    return password


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _cmd_users(runtime: AuthRuntime, args: argparse.Namespace) -> int:
    users = sorted(runtime.directory.list(), key=lambda u: u.key)
    if not users:
        print("  No users.")
        return 0
    width = max(len(u.username) for u in users)
    for user in users:
        print(f"  {user.username:<{width}}  {user.role.value:<8}  {user.display_name}")
    return 0


async def _cmd_add_user(runtime: AuthRuntime, args: argparse.Namespace) -> int:
    password = _prompt_password()
    if password is None:
        return 1
    try:
        user = await runtime.directory.add(args.username, args.display_name or args.username, args.role, password)
    except DuplicateUsernameError:
        print(f"  [!] A user named '{args.username}' already exists.")
        return 1
    except ValueError as e:
        print(f"  [!] {e}")
        return 1
    print(f"  Added {user.username} ({user.role.value}).")
    return 0


async def _cmd_update_user(runtime: AuthRuntime, args: argparse.Namespace) -> int:
    if args.display_name is None and args.role is None and not args.password:
        print("  [!] Nothing to update. Pass --display-name, --role or --password.")
        return 1
    password = None
    if args.password:
        password = _prompt_password()
        if password is None:
            return 1
    try:
        user = await runtime.directory.update(
            args.username,
            display_name=args.display_name,
            role=args.role,
            password=password,
        )
    except UserNotFoundError:
        print(f"  [!] No user named '{args.username}'.")
        return 1
    print(f"  Updated {user.username}.")
    return 0


async def _cmd_remove_user(runtime: AuthRuntime, args: argparse.Namespace) -> int:
    existed = runtime.directory.find(args.username) is not None
    try:
        runtime.authenticator.remove_user(args.username)
    except (LastAdminError, CannotDeleteSelfError) as e:
        print(f"  [!] {e}")
        return 1
    print(f"  Removed {args.username}." if existed else f"  No local user named '{args.username}'.")
    return 0


async def _cmd_pull(runtime: AuthRuntime, args: argparse.Namespace) -> int:
    # boot() has already pulled once; this reports what the remote currently holds.
    if not runtime.mirror.enabled:
        print("  Remote sync is not configured (FIREBASE_PROJECT_ID is empty).")
        return 1
    replaced = await runtime.mirror.pull(runtime.directory)
    if replaced:
        print(f"  Directory replaced from remote: {len(runtime.directory)} user(s).")
    else:
        print("  Remote returned no users; local directory kept.")
    return 0


async def _cmd_check_default(runtime: AuthRuntime, args: argparse.Namespace) -> int:
    if await runtime.authenticator.is_using_default_password():
        print("  [!] The admin account still uses the default password. Change it now.")
        return 2
    print("  The admin account does not use the default password.")
    return 0


_COMMANDS = {
    "users": _cmd_users,
    "add-user": _cmd_add_user,
    "update-user": _cmd_update_user,
    "remove-user": _cmd_remove_user,
    "pull": _cmd_pull,
    "check-default": _cmd_check_default,
}


async def run(args: argparse.Namespace, runtime: Optional[AuthRuntime] = None) -> int:
    """Boot the auth runtime, run one command, then drain and close."""
    runtime = runtime or build_runtime()
    try:
        await runtime.authenticator.boot()
        return await _COMMANDS[args.command](runtime, args)
    finally:
        await runtime.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workdesk",
        description="Manage Workdesk users and credentials.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py users
  python main.py add-user alice --display-name "Alice A" --role manager
  python main.py update-user alice --password
  FIREBASE_PROJECT_ID=my-team python main.py pull
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("users", help="List every user in the local directory")

    add = sub.add_parser("add-user", help="Create a user (prompts for the password)")
    add.add_argument("username")
    add.add_argument("--display-name", default=None, help="Defaults to the username")
    add.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.engineer.value,
        help="Role (default: engineer)",
    )

    upd = sub.add_parser("update-user", help="Change a user's display name, role or password")
    upd.add_argument("username")
    upd.add_argument("--display-name", default=None)
    upd.add_argument("--role", choices=[r.value for r in Role], default=None)
    upd.add_argument("--password", action="store_true", help="Prompt for a new password")

    rm = sub.add_parser("remove-user", help="Delete a user locally and remotely")
    rm.add_argument("username")

    sub.add_parser("pull", help="Replace the local directory with the remote snapshot")
    sub.add_parser("check-default", help="Exit 2 if the admin still uses the default password")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    level = "DEBUG" if args.verbose else get_settings().log_level
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)-5s %(name)s %(message)s")
    logger.debug("Running command %s", args.command)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
