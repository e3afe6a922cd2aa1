"""World models for the sync API."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from engine.kernel.normalize import normalize_world
from engine.kernel.types import World

# Kept in columns, never in the JSONB document.
_COLUMN_KEYS = ("createdAt", "updatedAt")


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def world_document(world: World) -> dict[str, Any]:
    """JSONB payload for a world row."""
    return {k: v for k, v in world.to_dict().items() if k not in _COLUMN_KEYS}


class WorldRecord(BaseModel):
    """Core world row. Represents a row in the worlds table."""

    owner_id: str
    id: str
    name: str
    position: int = 0
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def to_world(self) -> World:
        """Canonical World, repaired through normalization."""
        return normalize_world(
            {
                **self.data,
                "id": self.id,
                "name": self.name,
                "createdAt": _iso(self.created_at),
                "updatedAt": _iso(self.updated_at),
            }
        )


class SyncRequest(BaseModel):
    """What the client sends to PATCH /api/worlds/sync."""

    # Items stay raw: unknown or malformed changes are filtered, not rejected.
    changes: list[Any] = Field(default_factory=list)


class CreateWorldRequest(BaseModel):
    """What the client sends to POST /api/worlds."""

    name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)


class WorldsResponse(BaseModel):
    """Canonical world list for the current owner."""

    data: list[dict[str, Any]]

    @classmethod
    def from_worlds(cls, worlds: list[World]) -> WorldsResponse:
        return cls(data=[w.to_dict() for w in worlds])


class WorldResponse(BaseModel):
    data: dict[str, Any]

    @classmethod
    def from_world(cls, world: World) -> WorldResponse:
        return cls(data=world.to_dict())
