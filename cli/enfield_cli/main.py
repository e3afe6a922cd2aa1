"""Main entry point for the Enfield CLI."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from enfield_cli import __version__
from enfield_cli.auth import login, logout
from enfield_cli.cache import FileStore, LocalCache
from enfield_cli.client import WorldsClient
from enfield_cli.config import Config
from enfield_cli.repl import Repl
from enfield_cli.sync import ConnectivityMonitor, SyncSession


def print_help():
    """Print help message."""
    print(f"""
Enfield CLI v{__version__}

Usage:
  enfield [options] [command]

Commands:
  login ID          Sign in as user ID (see --name, --email, --token)
  logout            Clear the stored identity

Options:
  --api-url URL     Override API endpoint (default: http://localhost:8000)
  --name NAME       Display name for login
  --email EMAIL     Email for login
  --token TOKEN     Bearer token for login
  --all             With logout, clear every environment
  --offline         Start the REPL without contacting the server
  -h, --help        Show this help
  -v, --version     Show version

Environment:
  ENFIELD_API_URL   Override API endpoint (same as --api-url)
  ENFIELD_LOG       Log level for diagnostics (e.g. INFO, DEBUG)

Examples:
  enfield                                       # Open the REPL
  enfield login ada --name "Ada Lovelace"       # Sign in locally
  enfield login ada --api-url https://enfield.example.com --token ...
  enfield logout --all                          # Sign out everywhere

Inside the REPL type /help for commands.
""")


_VALUE_OPTIONS = {
    "--api-url": "api_url",
    "--name": "name",
    "--email": "email",
    "--token": "token",
}


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str | None (login, logout, None for REPL)
        user_id: str | None (login)
        api_url, name, email, token: str | None
        logout_all: bool
        offline: bool
        show_help: bool
        show_version: bool
    """
    result = {
        "command": None,
        "user_id": None,
        "api_url": None,
        "name": None,
        "email": None,
        "token": None,
        "logout_all": False,
        "offline": False,
        "show_help": False,
        "show_version": False,
    }

    i = 0
    while i < len(args):
        arg = args[i]

        if arg == "login":
            result["command"] = "login"
        elif arg == "logout":
            result["command"] = "logout"
        elif arg in _VALUE_OPTIONS:
            if i + 1 < len(args):
                result[_VALUE_OPTIONS[arg]] = args[i + 1]
                i += 1
            else:
                print(f"Error: {arg} requires a value")
                sys.exit(1)
        elif arg == "--all":
            result["logout_all"] = True
        elif arg == "--offline":
            result["offline"] = True
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            print(f"Unknown option: {arg}")
            print("Run 'enfield --help' for usage.")
            sys.exit(1)
        elif result["command"] == "login" and result["user_id"] is None:
            result["user_id"] = arg
        else:
            print(f"Unknown command: {arg}")
            print("Run 'enfield --help' for usage.")
            sys.exit(1)

        i += 1

    return result


async def run_repl(config: Config, offline: bool = False):
    """Bootstrap a sync session from cache + server and run the REPL."""
    user = config.current_user()
    client = WorldsClient(config.api_url, token=config.token, user_id=user.id if user else None)
    session = SyncSession(client, LocalCache(FileStore(config.config_dir)), online=not offline)
    monitor = ConnectivityMonitor(client, session)

    async with client:
        had_cache = session.load_cached()
        if offline:
            print(f"Working offline ({len(session.pending)} change(s) waiting).")
        else:
            await session.refresh(had_cache)
            monitor.start()

        repl = Repl(config, session, monitor)
        try:
            await repl.start()
        finally:
            await monitor.stop()
            await session.close()
            if session.queued:
                print(f"{len(session.queued)} change(s) kept locally; they sync next time.")


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    if args["show_help"]:
        print_help()
        return

    if args["show_version"]:
        print(f"enfield-cli {__version__}")
        return

    logging.basicConfig(
        level=os.environ.get("ENFIELD_LOG", "WARNING").upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = Config(api_url_override=args["api_url"])

    if args["command"] == "login":
        if not args["user_id"]:
            print("Error: login requires a user id")
            sys.exit(1)
        success = asyncio.run(
            login(config, args["user_id"], name=args["name"], email=args["email"], token=args["token"])
        )
        sys.exit(0 if success else 1)

    elif args["command"] == "logout":
        success = logout(config, logout_all=args["logout_all"])
        sys.exit(0 if success else 1)

    else:
        if not config.is_signed_in:
            print(f"Not signed in to {config.api_url}; editing as the local storyteller.")
        try:
            asyncio.run(run_repl(config, offline=args["offline"]))
        except KeyboardInterrupt:
            print()


if __name__ == "__main__":
    main()
