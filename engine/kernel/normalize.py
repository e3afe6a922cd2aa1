"""
Enfield Kernel — World Normalization

Reconciles a partial or malformed world record (cache, database row,
network payload) into a canonical World:

- missing id/name defaulted
- page tree defaulted recursively
- collaborators defaulted, then exactly one Owner resolved
- activity defaulted and capped at ACTIVITY_LIMIT, order preserved

Idempotent: normalize_world(normalize_world(w).to_dict()) equals
normalize_world(w). Fresh ids are only generated where ids are absent.
"""

from __future__ import annotations

from typing import Any

from engine.kernel.types import (
    ACTIVITY_LIMIT,
    COLLABORATOR_ROLES,
    DEFAULT_PAGE_TITLE,
    DEFAULT_WORLD_NAME,
    ROLE_EDITOR,
    ROLE_OWNER,
    ActivityEntry,
    PageNode,
    World,
    WorldCollaborator,
    generate_id,
    get_avatar_color,
    now_iso,
)


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _str_or(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default


def normalize_pages(raw: Any) -> list[PageNode]:
    pages: list[PageNode] = []
    for item in _as_list(raw):
        node = _as_dict(item)
        content = node.get("content")
        pages.append(
            PageNode(
                id=_str_or(node.get("id"), "") or generate_id("page"),
                title=_str_or(node.get("title"), DEFAULT_PAGE_TITLE),
                content=content if isinstance(content, str) else "",
                favorite=bool(node.get("favorite", False)),
                children=normalize_pages(node.get("children")),
            )
        )
    return pages


def normalize_collaborator(raw: Any, index: int, world_id: str, owner_id: str | None) -> WorldCollaborator:
    """Default one collaborator entry. Unknown or non-string roles fall back by owner_id."""
    entry = _as_dict(raw)
    collaborator_id = _str_or(entry.get("id"), f"{world_id}-collaborator-{index}")
    role = entry.get("role")
    if not isinstance(role, str) or role not in COLLABORATOR_ROLES:
        role = ROLE_OWNER if collaborator_id == owner_id else ROLE_EDITOR
    return WorldCollaborator(
        id=collaborator_id,
        name=_str_or(entry.get("name"), f"Collaborator {index + 1}"),
        email=_str_or(entry.get("email"), "collaborator@example.com"),
        role=role,
        avatar_color=_str_or(entry.get("avatarColor"), get_avatar_color(collaborator_id)),
    )


def normalize_collaborators(
    world_id: str,
    raw: Any,
    owner_id: str | None,
    world_name: str,
) -> tuple[list[WorldCollaborator], str]:
    """
    Default each collaborator (duplicate ids keep the first entry), then
    resolve the single owner.

    Preference: the declared owner_id when present among collaborators,
    else the first collaborator already marked Owner, else a synthesized
    owner prepended to the list. Returns (collaborators, owner_id).
    """
    collaborators: list[WorldCollaborator] = []
    seen: set[str] = set()
    for index, item in enumerate(_as_list(raw)):
        collaborator = normalize_collaborator(item, index, world_id, owner_id)
        if collaborator.id in seen:
            continue
        seen.add(collaborator.id)
        collaborators.append(collaborator)

    resolved: str | None = None
    if owner_id and any(c.id == owner_id for c in collaborators):
        resolved = owner_id
    else:
        resolved = next((c.id for c in collaborators if c.role == ROLE_OWNER), None)

    if resolved is None:
        fallback_id = owner_id or f"{world_id}-owner"
        collaborators.insert(
            0,
            WorldCollaborator(
                id=fallback_id,
                name=f"{world_name} Owner",
                email="owner@example.com",
                role=ROLE_OWNER,
                avatar_color=get_avatar_color(fallback_id),
            ),
        )
        resolved = fallback_id

    # Exactly one Owner: the resolved id. Conflicting Owner marks are demoted.
    for collaborator in collaborators:
        if collaborator.id == resolved:
            collaborator.role = ROLE_OWNER
        elif collaborator.role == ROLE_OWNER:
            collaborator.role = ROLE_EDITOR

    return collaborators, resolved


def normalize_activity(raw: Any) -> list[ActivityEntry]:
    entries: list[ActivityEntry] = []
    for item in _as_list(raw)[:ACTIVITY_LIMIT]:
        entry = _as_dict(item)
        context = entry.get("context")
        entries.append(
            ActivityEntry(
                id=_str_or(entry.get("id"), "") or generate_id("activity"),
                action=_str_or(entry.get("action"), "update"),
                target=_str_or(entry.get("target"), "Entry"),
                context=context if isinstance(context, str) else "",
                actor_id=_str_or(entry.get("actorId"), "system"),
                actor_name=_str_or(entry.get("actorName"), "System"),
                timestamp=_str_or(entry.get("timestamp"), "") or now_iso(),
            )
        )
    return entries


def normalize_world(raw: dict[str, Any] | World) -> World:
    """Canonical World from a partial record (or an existing World)."""
    record = raw.to_dict() if isinstance(raw, World) else _as_dict(raw)

    world_id = _str_or(record.get("id"), "") or generate_id("world")
    world_name = _str_or(record.get("name"), DEFAULT_WORLD_NAME)
    declared_owner = record.get("ownerId") if isinstance(record.get("ownerId"), str) else None
    collaborators, owner_id = normalize_collaborators(
        world_id,
        record.get("collaborators"),
        declared_owner or None,
        world_name,
    )

    description = record.get("description")
    created_at = record.get("createdAt")
    updated_at = record.get("updatedAt")
    return World(
        id=world_id,
        name=world_name,
        owner_id=owner_id,
        pages=normalize_pages(record.get("pages")),
        collaborators=collaborators,
        activity=normalize_activity(record.get("activity")),
        description=description if isinstance(description, str) else None,
        created_at=created_at if isinstance(created_at, str) else None,
        updated_at=updated_at if isinstance(updated_at, str) else None,
    )


def normalize_worlds(raw: Any) -> list[World]:
    return [normalize_world(item) for item in _as_list(raw)]
