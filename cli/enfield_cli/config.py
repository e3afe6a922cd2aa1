"""
Configuration and identity for the Enfield CLI.

Multi-environment support:
  The CLI stores a separate identity per API URL, so a local dev server and
  a deployed one can be used side by side.

  Config structure:
  {
    "environments": {
      "http://localhost:8000": {
        "user_id": "ada",
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "token": null,
        "current_world_id": "world-..."
      }
    },
    "default_url": "http://localhost:8000"
  }

Environment resolution order:
  1. ENFIELD_API_URL environment variable
  2. --api-url command line flag
  3. default_url from config file
  4. Fallback: http://localhost:8000

Without a signed-in user the CLI acts as `local-user` ("Storyteller").
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from pathlib import Path

from engine.kernel.activity import to_title_case
from engine.kernel.types import Actor

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"
LOCAL_ACTOR = Actor(id="local-user", name="Storyteller", email="storyteller@example.com")

IdentityListener = Callable[[Actor | None], None]


class Config:
    """Config manager for the Enfield CLI with multi-environment support."""

    def __init__(self, api_url_override: str | None = None, config_dir: Path | None = None):
        """
        Initialize config.

        Args:
            api_url_override: Optional --api-url flag value
            config_dir: Directory holding config.json (default ~/.enfield)
        """
        self.config_dir = config_dir or Path.home() / ".enfield"
        self.config_file = self.config_dir / "config.json"
        self._data: dict = {}
        self._api_url_override = api_url_override
        self._listeners: list[IdentityListener] = []
        self._load()

    def _load(self):
        """Load config from disk. An unreadable file starts a fresh config."""
        if self.config_file.exists():
            try:
                with open(self.config_file) as f:
                    self._data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("config: ignoring unreadable %s: %s", self.config_file, e)
                self._data = {}

        if not isinstance(self._data, dict):
            self._data = {}
        if not isinstance(self._data.get("environments"), dict):
            self._data["environments"] = {}

    def _save(self):
        """Save config to disk with secure permissions."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

        with open(self.config_file, "w") as f:
            json.dump(self._data, f, indent=2)

        # Owner-only read/write
        self.config_file.chmod(0o600)

    @property
    def api_url(self) -> str:
        """
        Get current API URL.

        Resolution order:
        1. ENFIELD_API_URL environment variable
        2. --api-url flag (passed to constructor)
        3. default_url from config
        4. Fallback: http://localhost:8000
        """
        env_url = os.environ.get("ENFIELD_API_URL")
        if env_url:
            return env_url.rstrip("/")

        if self._api_url_override:
            return self._api_url_override.rstrip("/")

        return self._data.get("default_url", DEFAULT_API_URL).rstrip("/")

    @property
    def default_url(self) -> str:
        return self._data.get("default_url", DEFAULT_API_URL)

    @default_url.setter
    def default_url(self, value: str):
        self._data["default_url"] = value.rstrip("/")
        self._save()

    def _get_env(self) -> dict:
        """Get current environment config dict."""
        return self._data["environments"].get(self.api_url, {})

    def _set_env(self, key: str, value):
        """Set a value in current environment config."""
        self._data["environments"].setdefault(self.api_url, {})[key] = value
        self._save()

    @property
    def token(self) -> str | None:
        return self._get_env().get("token")

    @property
    def user_id(self) -> str | None:
        return self._get_env().get("user_id")

    @property
    def current_world_id(self) -> str | None:
        """Last world opened in the REPL for this environment."""
        return self._get_env().get("current_world_id")

    @current_world_id.setter
    def current_world_id(self, value: str | None):
        self._set_env("current_world_id", value)

    # -- identity provider -------------------------------------------------

    def current_user(self) -> Actor | None:
        """The signed-in user for this environment, or None."""
        env = self._get_env()
        user_id = env.get("user_id")
        if not user_id:
            return None
        email = env.get("email") or ""
        name = env.get("name") or to_title_case(email.split("@")[0] if email else user_id)
        return Actor(id=user_id, name=name, email=email)

    @property
    def actor(self) -> Actor:
        """Who mutations are attributed to. Falls back to the local storyteller."""
        return self.current_user() or LOCAL_ACTOR

    def on_change(self, callback: IdentityListener) -> Callable[[], None]:
        """
        Call `callback(current_user())` after every sign-in/sign-out.

        Returns:
            A function that removes the subscription
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        user = self.current_user()
        for listener in list(self._listeners):
            listener(user)

    def sign_in(self, user_id: str, name: str | None = None, email: str | None = None, token: str | None = None):
        """Store an identity for the current environment."""
        self._data["environments"][self.api_url] = {
            **self._get_env(),
            "user_id": user_id,
            "name": name,
            "email": email,
            "token": token,
        }
        self._save()
        self._notify()

    @property
    def is_signed_in(self) -> bool:
        return self.current_user() is not None

    def clear_environment(self, url: str | None = None):
        """
        Clear the identity for one environment.

        Args:
            url: Environment URL to clear. If None, clears current environment.
        """
        target_url = (url or self.api_url).rstrip("/")
        if target_url in self._data["environments"]:
            del self._data["environments"][target_url]
            self._save()
            if target_url == self.api_url:
                self._notify()

    def clear_all(self):
        """Clear every environment and delete the config file."""
        self._data = {"environments": {}}
        if self.config_file.exists():
            self.config_file.unlink()
        self._notify()

    def list_environments(self) -> list[dict]:
        """
        List all signed-in environments.

        Returns:
            List of dicts with url, user_id, is_current keys.
        """
        current = self.api_url
        return [
            {"url": url, "user_id": env.get("user_id"), "is_current": url == current}
            for url, env in self._data.get("environments", {}).items()
            if env.get("user_id")
        ]
