"""
Local cache persistence.

A best-effort key-value store plus the world cache layered on top of it.
Nothing here raises: read failures mean "no cache", write failures are
logged and the session carries on in memory.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from engine.kernel.changes import WorldChange, dump_changes, parse_changes
from engine.kernel.normalize import normalize_worlds
from engine.kernel.types import World, now_iso

logger = logging.getLogger(__name__)

CACHE_KEY = "enfield-worlds-cache-v2"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class FileStore:
    """One JSON file per key under a directory (default ~/.enfield)."""

    def __init__(self, directory: Path | None = None):
        self.directory = directory or Path.home() / ".enfield"

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("cache: failed to read %s: %s", key, e)
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            logger.warning("cache: failed to write %s: %s", key, e)


@dataclass
class CacheSnapshot:
    worlds: list[World]
    pending_changes: list[WorldChange] = field(default_factory=list)
    timestamp: str | None = None


class LocalCache:
    """The world list and unsent changes, stored wholesale under CACHE_KEY."""

    def __init__(self, store: KeyValueStore, key: str = CACHE_KEY):
        self.store = store
        self.key = key

    def load(self) -> CacheSnapshot | None:
        """
        Read the cached snapshot. Missing, unparsable or shapeless data
        (no `worlds` list) all mean no cache.
        """
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning("cache: discarding unparsable %s: %s", self.key, e)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("worlds"), list):
            return None

        timestamp = data.get("timestamp")
        try:
            return CacheSnapshot(
                worlds=normalize_worlds(data["worlds"]),
                pending_changes=parse_changes(data.get("pendingChanges")),
                timestamp=timestamp if isinstance(timestamp, str) else None,
            )
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("cache: discarding unusable %s: %s", self.key, e)
            return None

    def save(self, worlds: list[World], pending_changes: list[WorldChange]) -> None:
        """Overwrite the snapshot. Failures are logged, never raised."""
        try:
            payload = json.dumps(
                {
                    "worlds": [w.to_dict() for w in worlds],
                    "pendingChanges": dump_changes(pending_changes),
                    "timestamp": now_iso(),
                }
            )
        except (TypeError, ValueError) as e:
            logger.warning("cache: failed to serialize snapshot: %s", e)
            return
        self.store.set(self.key, payload)
