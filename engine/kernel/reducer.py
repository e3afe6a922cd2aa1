"""
Enfield Kernel — Change Log Reducer

Pure function: (worlds, changes) → worlds
No side effects. No IO. Deterministic.

Changes apply strictly in list order, each one to the result of the
previous one. The caller's list is deep-copied up front and never mutated.
Changes addressing a world that does not exist are no-ops, which keeps the
reducer total and safe to run speculatively (optimistic local state,
replay over fresh server state, server-side persistence).

    apply_changes(W, C1 + C2) == apply_changes(apply_changes(W, C1), C2)
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from engine.kernel import page_tree
from engine.kernel.changes import (
    AppendActivity,
    CreateWorld,
    DeleteWorld,
    InsertPage,
    MovePage,
    RemovePage,
    SetCollaborators,
    UpdatePage,
    UpdateWorld,
    WorldChange,
    sanitize_activity_entry,
)
from engine.kernel.types import ACTIVITY_LIMIT, ActivityEntry, World, world_index

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def apply_changes(worlds: list[World], changes: list[WorldChange]) -> list[World]:
    """Fold `changes` over a deep copy of `worlds`."""
    state = copy.deepcopy(list(worlds))
    for change in changes:
        state = apply_change(state, change)
    return state


def apply_change(worlds: list[World], change: WorldChange) -> list[World]:
    """
    Apply one change. Unknown change types return the list unchanged.
    `worlds` is treated as owned by the reducer (apply_changes copies first).
    """
    handler = _HANDLERS.get(getattr(change, "type", None))  # type: ignore[arg-type]
    if handler is None:
        return worlds
    return handler(worlds, change)


def append_activity(activity: list[ActivityEntry], *entries: ActivityEntry) -> list[ActivityEntry]:
    """Prepend entries (most recent first) and evict beyond ACTIVITY_LIMIT."""
    return [*entries, *activity][:ACTIVITY_LIMIT]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _with_world(worlds: list[World], world_id: str, updater: Callable[[World], World]) -> list[World]:
    i = world_index(worlds, world_id)
    if i < 0:
        return worlds
    return [*worlds[:i], updater(worlds[i]), *worlds[i + 1 :]]


_WORLD_ATTRS: dict[str, str] = {
    "name": "name",
    "ownerId": "owner_id",
    "description": "description",
}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _handle_create_world(worlds: list[World], change: CreateWorld) -> list[World]:
    world = copy.deepcopy(change.world)
    return [*(w for w in worlds if w.id != world.id), world]


def _handle_update_world(worlds: list[World], change: UpdateWorld) -> list[World]:
    fields: dict[str, Any] = {
        _WORLD_ATTRS[key]: value for key, value in change.data.items() if key in _WORLD_ATTRS
    }
    return _with_world(worlds, change.world_id, lambda w: replace(w, **fields))


def _handle_delete_world(worlds: list[World], change: DeleteWorld) -> list[World]:
    return [w for w in worlds if w.id != change.world_id]


def _handle_insert_page(worlds: list[World], change: InsertPage) -> list[World]:
    return _with_world(
        worlds,
        change.world_id,
        lambda w: replace(w, pages=page_tree.add_child(w.pages, change.parent_id, change.page)),
    )


def _handle_update_page(worlds: list[World], change: UpdatePage) -> list[World]:
    data = change.data

    def merge(page):
        return replace(
            page,
            title=data.get("title", page.title),
            content=data.get("content", page.content),
            favorite=data.get("favorite", page.favorite),
        )

    return _with_world(
        worlds,
        change.world_id,
        lambda w: replace(w, pages=page_tree.update_page(w.pages, change.page_id, merge)),
    )


def _handle_remove_page(worlds: list[World], change: RemovePage) -> list[World]:
    def remove(world: World) -> World:
        pages, _ = page_tree.remove_page(world.pages, change.page_id)
        return replace(world, pages=pages)

    return _with_world(worlds, change.world_id, remove)


def _handle_move_page(worlds: list[World], change: MovePage) -> list[World]:
    return _with_world(
        worlds,
        change.world_id,
        lambda w: replace(
            w,
            pages=page_tree.move_page(w.pages, change.page_id, change.target_id, change.position),
        ),
    )


def _handle_append_activity(worlds: list[World], change: AppendActivity) -> list[World]:
    entries = [sanitize_activity_entry(entry) for entry in change.entries]
    return _with_world(
        worlds,
        change.world_id,
        lambda w: replace(w, activity=append_activity(w.activity, *entries)),
    )


def _handle_set_collaborators(worlds: list[World], change: SetCollaborators) -> list[World]:
    collaborators = copy.deepcopy(change.collaborators)
    return _with_world(worlds, change.world_id, lambda w: replace(w, collaborators=collaborators))


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

_HANDLERS: dict[str, Callable[[list[World], Any], list[World]]] = {
    CreateWorld.type: _handle_create_world,
    UpdateWorld.type: _handle_update_world,
    DeleteWorld.type: _handle_delete_world,
    InsertPage.type: _handle_insert_page,
    UpdatePage.type: _handle_update_page,
    RemovePage.type: _handle_remove_page,
    MovePage.type: _handle_move_page,
    AppendActivity.type: _handle_append_activity,
    SetCollaborators.type: _handle_set_collaborators,
}
