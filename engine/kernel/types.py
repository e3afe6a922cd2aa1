"""
Enfield Kernel — Shared Types

Data classes used across the page tree, normalization, changes and reducer.
These are the contracts that bind the kernel together.

Wire format is camelCase JSON (ownerId, avatarColor, actorId, ...). Every
dataclass round-trips through to_dict() / from_dict(). from_dict() expects
well-formed input; untrusted records go through normalize.normalize_world().
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ACTIVITY_LIMIT = 40

DEFAULT_PAGE_TITLE = "Untitled page"
DEFAULT_SUBPAGE_TITLE = "Untitled sub-page"
DEFAULT_WORLD_NAME = "Untitled world"

ROLE_OWNER = "Owner"
ROLE_EDITOR = "Editor"
ROLE_VIEWER = "Viewer"

COLLABORATOR_ROLES: set[str] = {ROLE_OWNER, ROLE_EDITOR, ROLE_VIEWER}

ACTIVITY_ACTIONS: set[str] = {
    "create",
    "update",
    "duplicate",
    "delete",
    "move",
    "share",
}

AVATAR_PALETTE: tuple[str, ...] = (
    "#6366f1",
    "#10b981",
    "#f59e0b",
    "#ec4899",
    "#14b8a6",
    "#a855f7",
    "#f97316",
    "#0ea5e9",
)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class PageNode:
    """
    A node in a world's page forest.

    `children` is owned exclusively by this node. Tree operations never
    mutate a node in place; they return new nodes along the changed path.
    """

    id: str
    title: str = DEFAULT_PAGE_TITLE
    content: str = ""
    favorite: bool = False
    children: list[PageNode] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "favorite": self.favorite,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PageNode:
        return cls(
            id=d["id"],
            title=d.get("title", DEFAULT_PAGE_TITLE),
            content=d.get("content", ""),
            favorite=bool(d.get("favorite", False)),
            children=[cls.from_dict(child) for child in d.get("children", [])],
        )


@dataclass
class WorldCollaborator:
    id: str
    name: str
    email: str
    role: str
    avatar_color: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "avatarColor": self.avatar_color,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> WorldCollaborator:
        return cls(
            id=d["id"],
            name=d["name"],
            email=d["email"],
            role=d["role"],
            avatar_color=d.get("avatarColor") or get_avatar_color(d["id"]),
        )


@dataclass
class ActivityEntry:
    """Immutable audit record. Created by the mutation that causes it."""

    id: str
    action: str
    target: str
    actor_id: str
    actor_name: str
    timestamp: str  # ISO 8601 UTC
    context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "action": self.action,
            "target": self.target,
            "actorId": self.actor_id,
            "actorName": self.actor_name,
            "timestamp": self.timestamp,
        }
        if self.context is not None:
            d["context"] = self.context
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ActivityEntry:
        return cls(
            id=d["id"],
            action=d["action"],
            target=d["target"],
            actor_id=d["actorId"],
            actor_name=d["actorName"],
            timestamp=d.get("timestamp") or now_iso(),
            context=d.get("context"),
        )


@dataclass
class World:
    """
    A named workspace: a page forest, collaborators and an activity log.

    Once normalized, exactly one collaborator holds the Owner role and
    its id equals owner_id.
    """

    id: str
    name: str
    owner_id: str
    pages: list[PageNode] = field(default_factory=list)
    collaborators: list[WorldCollaborator] = field(default_factory=list)
    activity: list[ActivityEntry] = field(default_factory=list)
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "ownerId": self.owner_id,
            "pages": [page.to_dict() for page in self.pages],
            "collaborators": [c.to_dict() for c in self.collaborators],
            "activity": [entry.to_dict() for entry in self.activity],
        }
        if self.description is not None:
            d["description"] = self.description
        if self.created_at is not None:
            d["createdAt"] = self.created_at
        if self.updated_at is not None:
            d["updatedAt"] = self.updated_at
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> World:
        return cls(
            id=d["id"],
            name=d["name"],
            owner_id=d["ownerId"],
            pages=[PageNode.from_dict(p) for p in d.get("pages", [])],
            collaborators=[WorldCollaborator.from_dict(c) for c in d.get("collaborators", [])],
            activity=[ActivityEntry.from_dict(a) for a in d.get("activity", [])],
            description=d.get("description"),
            created_at=d.get("createdAt"),
            updated_at=d.get("updatedAt"),
        )


@dataclass(frozen=True)
class Actor:
    """The identity performing a mutation (current user)."""

    id: str
    name: str
    email: str

    def as_collaborator(self, role: str = ROLE_OWNER) -> WorldCollaborator:
        return WorldCollaborator(
            id=self.id,
            name=self.name,
            email=self.email,
            role=role,
            avatar_color=get_avatar_color(self.id),
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def generate_id(prefix: str) -> str:
    """Fresh opaque id, e.g. 'page-1b9d6bcd-...'."""
    return f"{prefix}-{uuid.uuid4()}"


def get_avatar_color(value: str) -> str:
    """Deterministic palette color for a collaborator id."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) % len(AVATAR_PALETTE)
    return AVATAR_PALETTE[h]


def now_iso() -> str:
    """Current UTC time as ISO 8601 string."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def clone_world(world: World) -> World:
    """Deep copy of a world. Ids are preserved."""
    return copy.deepcopy(world)


def world_index(worlds: list[World], world_id: str) -> int:
    """Index of the world with this id, or -1."""
    for i, world in enumerate(worlds):
        if world.id == world_id:
            return i
    return -1


def find_world(worlds: list[World], world_id: str) -> World | None:
    i = world_index(worlds, world_id)
    return worlds[i] if i >= 0 else None
