"""
Enfield Kernel — World Changes

The closed set of mutation intents exchanged by the sync protocol.
Each variant carries exactly what is needed to replay the mutation against
any prior world list. Wire shape: {"type": ..., **fields} in camelCase.

parse_change() / parse_changes() are the deserializers used at
every trust boundary (server request bodies, local cache). Unknown types
and malformed payloads are dropped with a warning, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal, TypeAlias

from engine.kernel.normalize import normalize_activity, normalize_collaborator, normalize_pages, normalize_world
from engine.kernel.types import (
    ActivityEntry,
    PageNode,
    World,
    WorldCollaborator,
    now_iso,
)

logger = logging.getLogger(__name__)

WORLD_FIELDS: tuple[str, ...] = ("name", "ownerId", "description")
PAGE_FIELDS: tuple[str, ...] = ("title", "content", "favorite")


class MalformedChange(ValueError):
    """A wire change is missing a field its variant requires."""


def _require_str(d: dict[str, Any], key: str) -> str:
    value = d.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedChange(f"{d.get('type')}: '{key}' must be a non-empty string")
    return value


def _require_dict(d: dict[str, Any], key: str) -> dict[str, Any]:
    value = d.get(key)
    if not isinstance(value, dict):
        raise MalformedChange(f"{d.get('type')}: '{key}' must be an object")
    return value


def _require_list(d: dict[str, Any], key: str) -> list[Any]:
    value = d.get(key)
    if not isinstance(value, list):
        raise MalformedChange(f"{d.get('type')}: '{key}' must be a list")
    return value


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass
class CreateWorld:
    type: ClassVar[str] = "createWorld"

    world: World

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "world": self.world.to_dict()}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CreateWorld:
        return cls(world=normalize_world(_require_dict(d, "world")))


@dataclass
class UpdateWorld:
    """Shallow merge of name / ownerId / description."""

    type: ClassVar[str] = "updateWorld"

    world_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "worldId": self.world_id, "data": dict(self.data)}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> UpdateWorld:
        raw = d.get("data") if isinstance(d.get("data"), dict) else {}
        data = {k: v for k, v in raw.items() if k in WORLD_FIELDS and isinstance(v, str)}
        return cls(world_id=_require_str(d, "worldId"), data=data)


@dataclass
class DeleteWorld:
    type: ClassVar[str] = "deleteWorld"

    world_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "worldId": self.world_id}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> DeleteWorld:
        return cls(world_id=_require_str(d, "worldId"))


@dataclass
class InsertPage:
    type: ClassVar[str] = "insertPage"

    world_id: str
    parent_id: str | None
    page: PageNode

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "worldId": self.world_id,
            "parentId": self.parent_id,
            "page": self.page.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> InsertPage:
        pages = normalize_pages([_require_dict(d, "page")])
        parent_id = d.get("parentId")
        return cls(
            world_id=_require_str(d, "worldId"),
            parent_id=parent_id if isinstance(parent_id, str) and parent_id else None,
            page=pages[0],
        )


@dataclass
class UpdatePage:
    """Shallow merge of title / content / favorite. Last writer wins per field."""

    type: ClassVar[str] = "updatePage"

    world_id: str
    page_id: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "worldId": self.world_id,
            "pageId": self.page_id,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> UpdatePage:
        raw = d.get("data") if isinstance(d.get("data"), dict) else {}
        return cls(
            world_id=_require_str(d, "worldId"),
            page_id=_require_str(d, "pageId"),
            data=page_data(**{k: raw[k] for k in PAGE_FIELDS if k in raw}),
        )


@dataclass
class RemovePage:
    type: ClassVar[str] = "removePage"

    world_id: str
    page_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "worldId": self.world_id, "pageId": self.page_id}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RemovePage:
        return cls(world_id=_require_str(d, "worldId"), page_id=_require_str(d, "pageId"))


@dataclass
class MovePage:
    type: ClassVar[str] = "movePage"

    world_id: str
    page_id: str
    target_id: str
    position: Literal["before", "after"] = "before"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "worldId": self.world_id,
            "pageId": self.page_id,
            "targetId": self.target_id,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MovePage:
        position = d.get("position")
        if position not in ("before", "after"):
            raise MalformedChange("movePage: 'position' must be 'before' or 'after'")
        return cls(
            world_id=_require_str(d, "worldId"),
            page_id=_require_str(d, "pageId"),
            target_id=_require_str(d, "targetId"),
            position=position,
        )


@dataclass
class AppendActivity:
    type: ClassVar[str] = "appendActivity"

    world_id: str
    entries: list[ActivityEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "worldId": self.world_id,
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AppendActivity:
        return cls(
            world_id=_require_str(d, "worldId"),
            entries=normalize_activity(_require_list(d, "entries")),
        )


@dataclass
class SetCollaborators:
    type: ClassVar[str] = "setCollaborators"

    world_id: str
    collaborators: list[WorldCollaborator] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "worldId": self.world_id,
            "collaborators": [c.to_dict() for c in self.collaborators],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SetCollaborators:
        world_id = _require_str(d, "worldId")
        collaborators: list[WorldCollaborator] = []
        seen: set[str] = set()
        for index, entry in enumerate(_require_list(d, "collaborators")):
            if not isinstance(entry, dict):
                raise MalformedChange(f"setCollaborators: collaborator {index} is not an object")
            collaborator = normalize_collaborator(entry, index, world_id, None)
            if collaborator.id not in seen:
                seen.add(collaborator.id)
                collaborators.append(collaborator)
        return cls(world_id=world_id, collaborators=collaborators)


WorldChange: TypeAlias = (
    CreateWorld
    | UpdateWorld
    | DeleteWorld
    | InsertPage
    | UpdatePage
    | RemovePage
    | MovePage
    | AppendActivity
    | SetCollaborators
)

CHANGE_TYPES: dict[str, type[WorldChange]] = {
    cls.type: cls
    for cls in (
        CreateWorld,
        UpdateWorld,
        DeleteWorld,
        InsertPage,
        UpdatePage,
        RemovePage,
        MovePage,
        AppendActivity,
        SetCollaborators,
    )
}

SUPPORTED_CHANGE_TYPES: frozenset[str] = frozenset(CHANGE_TYPES)


# ---------------------------------------------------------------------------
# Wire parsing
# ---------------------------------------------------------------------------


def parse_change(raw: Any) -> WorldChange | None:
    """
    Deserialize one wire change. Returns None (and logs) for anything that
    is not a recognized, well-formed change.
    """
    if not isinstance(raw, dict):
        logger.warning("changes: skipping non-object change: %r", raw)
        return None
    kind = raw.get("type")
    cls = CHANGE_TYPES.get(kind) if isinstance(kind, str) else None
    if cls is None:
        logger.warning("changes: skipping unknown change type: %r", kind)
        return None
    try:
        return cls.from_dict(raw)
    except MalformedChange as e:
        logger.warning("changes: skipping malformed change: %s", e)
        return None


def parse_changes(raw: Any) -> list[WorldChange]:
    """Deserialize a wire list, keeping order and dropping what parse_change rejects."""
    if not isinstance(raw, list):
        return []
    parsed = (parse_change(item) for item in raw)
    return [change for change in parsed if change is not None]


def dump_changes(changes: list[WorldChange]) -> list[dict[str, Any]]:
    return [change.to_dict() for change in changes]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def page_data(
    *,
    title: Any = None,
    content: Any = None,
    favorite: Any = None,
) -> dict[str, Any]:
    """Keep only correctly-typed page fields for an updatePage payload."""
    data: dict[str, Any] = {}
    if isinstance(title, str):
        data["title"] = title
    if isinstance(content, str):
        data["content"] = content
    if isinstance(favorite, bool):
        data["favorite"] = favorite
    return data


def build_page_change(world_id: str, page_id: str, **fields: Any) -> UpdatePage:
    """updatePage change carrying only the valid subset of title/content/favorite."""
    return UpdatePage(world_id=world_id, page_id=page_id, data=page_data(**fields))


def sanitize_activity_entry(entry: ActivityEntry) -> ActivityEntry:
    """Copy of an entry with its timestamp defaulted to now."""
    return ActivityEntry(
        id=entry.id,
        action=entry.action,
        target=entry.target,
        context=entry.context,
        actor_id=entry.actor_id,
        actor_name=entry.actor_name,
        timestamp=entry.timestamp or now_iso(),
    )
