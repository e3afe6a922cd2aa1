"""Sign-in flow for the Enfield CLI."""

from __future__ import annotations

import httpx

from enfield_cli.client import WorldsClient
from enfield_cli.config import Config


async def login(
    config: Config,
    user_id: str,
    name: str | None = None,
    email: str | None = None,
    token: str | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """
    Store an identity for the current environment and check it against
    the server.

    An unreachable server still signs in: the CLI works offline and syncs
    once the server is back. A rejected identity (401) is rolled back.

    Returns True if the identity was kept, False otherwise.
    """
    user_id = user_id.strip()
    if not user_id:
        print("Error: a user id is required")
        return False

    client = WorldsClient(config.api_url, token=token, user_id=user_id, transport=transport)
    try:
        print(f"Checking {config.api_url}...", end="", flush=True)
        worlds = await client.fetch_worlds()
        print(" done")
    except httpx.HTTPStatusError as e:
        print(" failed")
        if e.response.status_code == 401:
            print(f"Server rejected identity '{user_id}'.")
            return False
        print(f"Warning: server answered {e.response.status_code}; signing in anyway.")
        worlds = None
    except httpx.HTTPError as e:
        print(" offline")
        print(f"Warning: could not reach server ({e}); signing in anyway.")
        worlds = None
    finally:
        await client.aclose()

    config.sign_in(user_id, name=name, email=email, token=token)
    actor = config.actor
    print(f"Signed in as {actor.name} ({actor.id})")
    if worlds is not None:
        print(f"{len(worlds)} world(s) on {config.api_url}")
    print(f"Identity saved to {config.config_file}")
    return True


def logout(config: Config, logout_all: bool = False) -> bool:
    """
    Sign out and clear the stored identity.

    Args:
        config: Config instance
        logout_all: If True, clear all environments. If False, only current.

    Returns True if successful, False otherwise.
    """
    if logout_all:
        envs = config.list_environments()
        if not envs:
            print("No signed-in environments.")
            return True

        for env in envs:
            print(f"  Signing out of {env['url']} ({env.get('user_id') or 'unknown'})")

        config.clear_all()
        print("Signed out of all environments.")
        return True

    user = config.current_user()
    if user is None:
        print(f"Not signed in to {config.api_url}")
        return False

    config.clear_environment()
    print(f"Signed out of {config.api_url} ({user.id})")
    return True
