"""
Enfield Kernel — World Actions

The user-level mutations (create a page, rename a world, drag a page, ...)
expressed as WorldChanges.

Every action returns an ActionResult whose `worlds` is obtained by running
the reducer over its own `changes`. The optimistic local state is therefore
exactly what the server computes when it replays the same list.

Actions never raise for missing worlds or pages: they return an empty
result. The one exception is move_page(), which rejects cycle-inducing
moves with InvalidMoveError.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field

from engine.kernel import page_tree
from engine.kernel.activity import build_activity_entry
from engine.kernel.changes import (
    AppendActivity,
    CreateWorld,
    DeleteWorld,
    InsertPage,
    MovePage,
    RemovePage,
    SetCollaborators,
    UpdateWorld,
    WorldChange,
    build_page_change,
)
from engine.kernel.reducer import append_activity, apply_changes
from engine.kernel.types import (
    DEFAULT_PAGE_TITLE,
    DEFAULT_SUBPAGE_TITLE,
    DEFAULT_WORLD_NAME,
    PageNode,
    World,
    Actor,
    find_world,
    generate_id,
)

_SCRIPT_RE = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)
_PARAGRAPH_BREAK_RE = re.compile(r"\n{2,}")


class InvalidMoveError(ValueError):
    """A page cannot be moved beside itself or one of its descendants."""


@dataclass
class ActionResult:
    worlds: list[World]
    changes: list[WorldChange] = field(default_factory=list)
    focus_id: str | None = None


def _result(worlds: list[World], changes: list[WorldChange], focus_id: str | None = None) -> ActionResult:
    return ActionResult(worlds=apply_changes(worlds, changes), changes=changes, focus_id=focus_id)


def _noop(worlds: list[World]) -> ActionResult:
    return ActionResult(worlds=list(worlds))


# ---------------------------------------------------------------------------
# Content helpers
# ---------------------------------------------------------------------------


def sanitize_editor_html(markup: str) -> str:
    """Strip <script> blocks from editor markup."""
    return _SCRIPT_RE.sub("", markup)


def ensure_html_content(content: str) -> str:
    """
    Plain text becomes escaped <p> paragraphs (blank lines split paragraphs,
    single newlines become <br />). Markup passes through unchanged.
    """
    if not content or not content.strip():
        return ""
    if _TAG_RE.search(content.strip()):
        return content
    escaped = html.escape(content, quote=True).replace("&#x27;", "&#39;")
    body = _PARAGRAPH_BREAK_RE.sub("</p><p>", escaped).replace("\n", "<br />")
    return f"<p>{body}</p>"


# ---------------------------------------------------------------------------
# Worlds
# ---------------------------------------------------------------------------


def new_world(actor: Actor, name: str) -> World:
    """An empty world owned by `actor`, with its creation logged."""
    return World(
        id=generate_id("world"),
        name=name,
        owner_id=actor.id,
        collaborators=[actor.as_collaborator()],
        activity=[build_activity_entry(actor, "create", name, "Created world")],
    )


def create_world(worlds: list[World], actor: Actor, name: str | None = None) -> ActionResult:
    world = new_world(actor, name or f"New World {len(worlds) + 1}")
    return _result(worlds, [CreateWorld(world=world)], world.id)


def rename_world(worlds: list[World], world_id: str, name: str) -> ActionResult:
    if find_world(worlds, world_id) is None:
        return _noop(worlds)
    next_name = name.strip() or DEFAULT_WORLD_NAME
    return _result(worlds, [UpdateWorld(world_id=world_id, data={"name": next_name})], world_id)


def duplicate_world(worlds: list[World], actor: Actor, world_id: str) -> ActionResult:
    source = find_world(worlds, world_id)
    if source is None:
        return _noop(worlds)

    duplicate = new_world(actor, f"{source.name} copy")
    duplicate.pages = page_tree.clone_page_tree(source.pages)
    duplicate.activity = append_activity(
        duplicate.activity,
        build_activity_entry(actor, "duplicate", source.name, f"Copied from “{source.name}”"),
    )
    return _result(worlds, [CreateWorld(world=duplicate)], duplicate.id)


def delete_world(worlds: list[World], actor: Actor, world_id: str) -> ActionResult:
    """
    Delete a world. Deleting the last one creates an empty replacement so
    the list is never empty. Callers confirm before building this.
    """
    if find_world(worlds, world_id) is None:
        return _noop(worlds)

    changes: list[WorldChange] = [DeleteWorld(world_id=world_id)]
    remaining = [w for w in worlds if w.id != world_id]
    focus_id = remaining[0].id if remaining else None
    if not remaining:
        fallback = new_world(actor, DEFAULT_WORLD_NAME)
        changes.append(CreateWorld(world=fallback))
        focus_id = fallback.id
    return _result(worlds, changes, focus_id)


def remove_collaborator(worlds: list[World], actor: Actor, world_id: str, collaborator_id: str) -> ActionResult:
    """Only the owner may revoke access, and the owner cannot be removed."""
    world = find_world(worlds, world_id)
    if world is None or collaborator_id == world.owner_id or world.owner_id != actor.id:
        return _noop(worlds)

    collaborator = next((c for c in world.collaborators if c.id == collaborator_id), None)
    if collaborator is None:
        return _noop(worlds)

    remaining = [c for c in world.collaborators if c.id != collaborator_id]
    entry = build_activity_entry(actor, "share", collaborator.name, "Removed from shared access")
    return _result(
        worlds,
        [
            SetCollaborators(world_id=world_id, collaborators=remaining),
            AppendActivity(world_id=world_id, entries=[entry]),
        ],
        world_id,
    )


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


def add_page(worlds: list[World], actor: Actor, world_id: str, parent_id: str | None = None) -> ActionResult:
    world = find_world(worlds, world_id)
    if world is None:
        return _noop(worlds)

    page = page_tree.create_page(DEFAULT_SUBPAGE_TITLE if parent_id else DEFAULT_PAGE_TITLE)
    parent = page_tree.find_page(world.pages, parent_id) if parent_id else None
    context = f"Added beneath “{parent.title}”" if parent and parent.title else "Added to the index"
    entry = build_activity_entry(actor, "create", page.title, context)
    return _result(
        worlds,
        [
            InsertPage(world_id=world_id, parent_id=parent_id, page=page),
            AppendActivity(world_id=world_id, entries=[entry]),
        ],
        page.id,
    )


def rename_page(worlds: list[World], actor: Actor, world_id: str, page_id: str, title: str) -> ActionResult:
    """Commit a title edit. Only a real change is logged."""
    world = find_world(worlds, world_id)
    page = page_tree.find_page(world.pages, page_id) if world else None
    if page is None:
        return _noop(worlds)

    next_title = title.strip() or DEFAULT_PAGE_TITLE
    changes: list[WorldChange] = [build_page_change(world_id, page_id, title=next_title)]
    if page.title != next_title:
        entry = build_activity_entry(actor, "update", next_title, f"Renamed from “{page.title}”")
        changes.append(AppendActivity(world_id=world_id, entries=[entry]))
    return _result(worlds, changes, page_id)


def toggle_favorite(worlds: list[World], world_id: str, page_id: str) -> ActionResult:
    world = find_world(worlds, world_id)
    page = page_tree.find_page(world.pages, page_id) if world else None
    if page is None:
        return _noop(worlds)
    return _result(worlds, [build_page_change(world_id, page_id, favorite=not page.favorite)], page_id)


def update_page_title(worlds: list[World], world_id: str, page_id: str, title: str) -> ActionResult:
    """Live title edit (every keystroke). Not logged."""
    return _result(worlds, [build_page_change(world_id, page_id, title=title)], page_id)


def update_page_content(worlds: list[World], world_id: str, page_id: str, content: str) -> ActionResult:
    """Live content edit. Scripts are stripped and plain text wrapped in paragraphs."""
    return _result(
        worlds,
        [build_page_change(world_id, page_id, content=ensure_html_content(sanitize_editor_html(content)))],
        page_id,
    )


def duplicate_page(worlds: list[World], actor: Actor, world_id: str, page_id: str) -> ActionResult:
    """
    Copy a page and its subtree (fresh ids) right after the source, under
    the same parent.
    """
    world = find_world(worlds, world_id)
    source = page_tree.find_page(world.pages, page_id) if world else None
    if world is None or source is None:
        return _noop(worlds)

    title = f"{source.title} copy"
    duplicate = PageNode(
        id=generate_id("page"),
        title=title,
        content=source.content,
        favorite=False,
        children=page_tree.clone_page_tree(source.children),
    )
    entry = build_activity_entry(actor, "duplicate", title, f"Copied from “{source.title}”")
    return _result(
        worlds,
        [
            InsertPage(
                world_id=world_id,
                parent_id=page_tree.find_parent_id(world.pages, page_id),
                page=duplicate,
            ),
            MovePage(world_id=world_id, page_id=duplicate.id, target_id=page_id, position="after"),
            AppendActivity(world_id=world_id, entries=[entry]),
        ],
        duplicate.id,
    )


def delete_page(worlds: list[World], actor: Actor, world_id: str, page_id: str) -> ActionResult:
    """Remove a page and its subtree. Callers confirm before building this."""
    world = find_world(worlds, world_id)
    page = page_tree.find_page(world.pages, page_id) if world else None
    if page is None:
        return _noop(worlds)

    context = "Removed the page and its nested entries" if page.children else "Removed the page from the index"
    entry = build_activity_entry(actor, "delete", page.title, context)
    return _result(
        worlds,
        [
            RemovePage(world_id=world_id, page_id=page_id),
            AppendActivity(world_id=world_id, entries=[entry]),
        ],
    )


def move_page(
    worlds: list[World],
    actor: Actor,
    world_id: str,
    page_id: str,
    target_id: str,
    position: page_tree.Position = "before",
) -> ActionResult:
    """
    Reposition a page before/after a target at the target's depth.

    Raises:
        InvalidMoveError: target is the page itself or one of its descendants
    """
    world = find_world(worlds, world_id)
    page = page_tree.find_page(world.pages, page_id) if world else None
    if world is None or page is None:
        return _noop(worlds)

    if page_id == target_id:
        raise InvalidMoveError(f"cannot move '{page_id}' relative to itself")
    if page_tree.is_descendant(world.pages, page_id, target_id):
        raise InvalidMoveError(f"cannot move '{page_id}' beside its descendant '{target_id}'")

    target = page_tree.find_page(world.pages, target_id)
    if target is not None:
        context = f"Repositioned {position} “{target.title}”"
    else:
        context = "Reordered in the index"
    entry = build_activity_entry(actor, "move", page.title, context)
    return _result(
        worlds,
        [
            MovePage(world_id=world_id, page_id=page_id, target_id=target_id, position=position),
            AppendActivity(world_id=world_id, entries=[entry]),
        ],
        page_id,
    )
