from __future__ import annotations

import argparse
import asyncio
import sys
import time
from datetime import datetime, timezone

import httpx

from copilot_auth.auth.errors import AuthError, InvalidCredential
from copilot_auth.config.settings import Settings, get_settings
from copilot_auth.logging.setup import configure_logging
from copilot_auth.services.auth_manager import AuthManager
from copilot_auth.services.credential_store import FileCredentialStore
from copilot_auth.services.identity import IdentityVerifier


async def _login(settings: Settings, args: argparse.Namespace) -> int:
    async with AuthManager.from_settings(settings) as manager:
        await manager.initialize()
        principal = await manager.get_principal()
    print(f"Logged in as {principal.login}")
    return 0


async def _status(settings: Settings, args: argparse.Namespace) -> int:
    store = FileCredentialStore(settings.token_path)
    stored = await store.load()
    print(f"Credential file: {settings.token_path}")
    if settings.github_token:
        print("Credential source: GITHUB_TOKEN")
    elif stored:
        print("Credential source: stored")
    else:
        print("Auth status: logged_out")
        return 0

    credential = settings.github_token or stored
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        try:
            principal = await IdentityVerifier(client, settings).verify(credential)
        except InvalidCredential as exc:
            print(f"Auth status: invalid ({exc.status_code})")
            return 1
    print("Auth status: logged_in")
    print(f"User: {principal.login}")
    return 0


async def _token(settings: Settings, args: argparse.Namespace) -> int:
    async with AuthManager.from_settings(settings) as manager:
        token = await manager.get_service_token()
    expires = datetime.fromtimestamp(token.expires_at, tz=timezone.utc)
    print(f"Expires at: {expires.isoformat()}")
    print(f"Token TTL: {max(0, int(token.expires_at - time.time()))}s")
    print(f"Refresh in: {token.refresh_in}s")
    if args.show:
        print(token.token)
    return 0


async def _whoami(settings: Settings, args: argparse.Namespace) -> int:
    async with AuthManager.from_settings(settings) as manager:
        principal = await manager.get_principal()
    if principal.name:
        print(f"{principal.login} ({principal.name})")
    else:
        print(principal.login)
    return 0


async def _logout(settings: Settings, args: argparse.Namespace) -> int:
    await FileCredentialStore(settings.token_path).clear()
    print("Logged out")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GitHub Copilot auth helper")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="subcommand", required=True)

    p_login = sub.add_parser("login", help="Device login flow")
    p_login.set_defaults(func=_login)

    p_status = sub.add_parser("status", help="Show login status")
    p_status.set_defaults(func=_status)

    p_token = sub.add_parser("token", help="Fetch a Copilot token")
    p_token.add_argument("--show", action="store_true", help="Print the token itself")
    p_token.set_defaults(func=_token)

    p_whoami = sub.add_parser("whoami", help="Query authenticated user")
    p_whoami.set_defaults(func=_whoami)

    p_logout = sub.add_parser("logout", help="Clear the stored GitHub token")
    p_logout.set_defaults(func=_logout)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level, settings.log_json)
    try:
        return int(asyncio.run(args.func(settings, args)))
    except AuthError as exc:
        print(f"Error ({exc.code}): {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
