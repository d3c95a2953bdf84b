#!/usr/bin/env python3
"""
Command-line front end for the HMS session client.

Usage:
    hms-session login [--username NAME]
    hms-session whoami
    hms-session refresh
    hms-session logout
    hms-session guest-otp booking 42 --token TOKEN --action cancel
"""

import argparse
import asyncio
import dataclasses
import getpass
import sys
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from .auth import (
    AiohttpTransport,
    AppKind,
    AuthenticatedHttpClient,
    FileStorage,
    GuestAccessResolver,
    HmsClientError,
    NavItem,
    OutcomeKind,
    PendingAction,
    ResourceKind,
    ResourceRef,
    SessionController,
    TokenStore,
    user_message,
    visible_menu,
)
from .config import ClientSettings, load_settings


class Components:
    """Everything one CLI invocation needs, wired together."""

    def __init__(self, settings: ClientSettings):
        self.store = TokenStore(FileStorage(settings.session_file))
        self.transport = AiohttpTransport(settings.api_url, timeout=settings.http_timeout)
        self.session = SessionController(self.store, self.transport, settings.app_kind)
        self.client = AuthenticatedHttpClient(self.session, self.transport)

    async def close(self) -> None:
        await self.transport.close()


def _print_menu(items: List[NavItem], indent: int = 2) -> None:
    for item in items:
        suffix = f"  ({item.path})" if item.path else ""
        print(f"{' ' * indent}{item.name}{suffix}")
        if item.children:
            _print_menu(list(item.children), indent + 2)


async def cmd_login(c: Components, args: argparse.Namespace) -> int:
    username = args.username or input("Username: ").strip()
    password = getpass.getpass("Password: ")
    if await c.session.login_with_credentials(username, password):
        print(f"Logged in as {c.session.user.username} ({c.session.user.role})")
        return 0
    print(f"Error: {c.session.last_error}")
    return 1


async def cmd_logout(c: Components, args: argparse.Namespace) -> int:
    await c.session.logout()
    print("Logged out")
    return 0


async def cmd_whoami(c: Components, args: argparse.Namespace) -> int:
    await c.session.init()
    if not c.session.is_authenticated:
        message = c.session.last_error or "Not logged in"
        print(message)
        return 1

    user = c.session.user
    print(f"{user.full_name or user.username} <{user.email or '-'}>  role={user.role}")
    if c.session.app_kind == AppKind.STAFF_DASHBOARD:
        print("Menu:")
        _print_menu(visible_menu(user.role))
    return 0


async def cmd_refresh(c: Components, args: argparse.Namespace) -> int:
    if await c.session.refresh_access_token():
        print("Access token refreshed")
        return 0
    print("Session expired. Please log in again.")
    return 1


async def cmd_guest_otp(
    c: Components,
    args: argparse.Namespace,
    prompt: Callable[[str], str] = input,
) -> int:
    """Walk through the guest flow for one resource: fetch, OTP, confirm."""
    await c.session.init()
    ref = ResourceRef(kind=ResourceKind(args.kind), resource_id=args.resource_id)
    resolver = GuestAccessResolver(c.session, c.client, ref, guest_token=args.token)

    try:
        await resolver.fetch()
    except HmsClientError as e:
        print(f"Error: {user_message(e)}")
        return 1

    try:
        outcome = await resolver.begin(PendingAction(args.action))
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    while outcome.kind == OutcomeKind.OTP_PROMPT or (
        outcome.kind == OutcomeKind.ERROR and resolver.pending_action is not None
    ):
        if outcome.message:
            print(outcome.message)
        code = prompt("OTP (empty to cancel): ").strip()
        if not code:
            resolver.dismiss()
            print("Cancelled")
            return 1
        outcome = await resolver.submit_otp(code)

    if outcome.kind == OutcomeKind.CONFIRM:
        answer = prompt(f"Really {outcome.action.value} {resolver.spec.noun} {ref.resource_id}? [y/N] ")
        if answer.strip().lower() != "y":
            resolver.dismiss()
            print("Cancelled")
            return 1
        outcome = await resolver.confirm()

    if outcome.kind == OutcomeKind.NAVIGATE:
        print(f"Next: {outcome.path}")
        return 0

    print(f"Error: {outcome.message}")
    return 1


COMMANDS = {
    "login": cmd_login,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "refresh": cmd_refresh,
    "guest-otp": cmd_guest_otp,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hms-session", description="HMS Session Client")
    parser.add_argument("--api-url", help="Backend base URL (default: $HMS_API_URL)")
    parser.add_argument("--store", help="Session file (default: $HMS_SESSION_FILE)")
    parser.add_argument(
        "--app",
        choices=[kind.value for kind in AppKind],
        help="Front-end to act as; decides which roles may log in",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in with username and password")
    login.add_argument("--username", help="Username (prompted if omitted)")

    sub.add_parser("logout", help="End the session")
    sub.add_parser("whoami", help="Show the logged-in user")
    sub.add_parser("refresh", help="Exchange the refresh token for a new access token")

    guest = sub.add_parser("guest-otp", help="Edit/cancel/delete a guest resource with an OTP")
    guest.add_argument("kind", choices=[kind.value for kind in ResourceKind])
    guest.add_argument("resource_id")
    guest.add_argument("--token", required=True, help="Guest token from the email link")
    guest.add_argument(
        "--action",
        choices=[action.value for action in PendingAction],
        default=PendingAction.EDIT.value,
    )
    return parser


def _settings_from_args(args: argparse.Namespace) -> ClientSettings:
    settings = load_settings()
    overrides = {}
    if args.api_url:
        overrides["api_url"] = args.api_url.rstrip("/")
    if args.store:
        overrides["session_file"] = Path(args.store).expanduser()
    if args.app:
        overrides["app_kind"] = AppKind(args.app)
    return dataclasses.replace(settings, **overrides)


async def run(args: argparse.Namespace) -> int:
    components = Components(_settings_from_args(args))
    try:
        return await COMMANDS[args.command](components, args)
    finally:
        await components.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
