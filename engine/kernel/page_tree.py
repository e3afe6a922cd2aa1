"""
Enfield Kernel — Page Tree

Pure operations over a forest of PageNode (a world's root-level pages).
No side effects. The input forest is never modified: nodes on the path to
a change are copied, untouched subtrees are shared.

Sibling order is list order. Inserts go to a deterministic position
(before/after a named sibling, or the end of a list). Nothing is sorted.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator
from dataclasses import replace
from typing import Literal

from engine.kernel.types import DEFAULT_PAGE_TITLE, PageNode, generate_id

Position = Literal["before", "after"]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def create_page(
    title: str,
    *,
    page_id: str | None = None,
    content: str = "",
    favorite: bool = False,
    children: list[PageNode] | None = None,
) -> PageNode:
    """Build a new page. Children, when given, are deep-copied."""
    return PageNode(
        id=page_id or generate_id("page"),
        title=title,
        content=content,
        favorite=favorite,
        children=copy.deepcopy(children) if children else [],
    )


def normalize_page(page: PageNode) -> PageNode:
    """
    Copy of `page` ready to enter a tree: id, title, content and favorite
    defaulted, children deep-copied.
    """
    return PageNode(
        id=page.id or generate_id("page"),
        title=page.title or DEFAULT_PAGE_TITLE,
        content=page.content or "",
        favorite=bool(page.favorite),
        children=copy.deepcopy(page.children or []),
    )


def clone_page_tree(nodes: list[PageNode]) -> list[PageNode]:
    """
    Deep copy with a fresh id on every node. Titles, content and favorite
    are preserved. A duplicated tree never shares identity with its source.
    """
    return [
        PageNode(
            id=generate_id("page"),
            title=node.title,
            content=node.content,
            favorite=node.favorite,
            children=clone_page_tree(node.children),
        )
        for node in nodes
    ]


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def find_page(nodes: list[PageNode], page_id: str) -> PageNode | None:
    """Depth-first search. First match or None."""
    for node in nodes:
        if node.id == page_id:
            return node
        found = find_page(node.children, page_id)
        if found is not None:
            return found
    return None


def find_parent_id(nodes: list[PageNode], page_id: str, parent_id: str | None = None) -> str | None:
    """Id of the page's parent, or None for root pages and unknown ids."""
    for node in nodes:
        if node.id == page_id:
            return parent_id
        candidate = find_parent_id(node.children, page_id, node.id)
        if candidate is not None:
            return candidate
    return None


def iter_pages(nodes: list[PageNode]) -> Iterator[PageNode]:
    """Pre-order traversal: forest order, then depth-first children."""
    for node in nodes:
        yield node
        yield from iter_pages(node.children)


def flatten(nodes: list[PageNode]) -> list[PageNode]:
    return list(iter_pages(nodes))


def is_descendant(nodes: list[PageNode], ancestor_id: str, candidate_id: str) -> bool:
    """
    True iff `candidate_id` sits anywhere in the subtree below `ancestor_id`.
    The ancestor itself is not its own descendant.
    """
    ancestor = find_page(nodes, ancestor_id)
    if ancestor is None:
        return False
    stack = list(ancestor.children)
    while stack:
        current = stack.pop()
        if current.id == candidate_id:
            return True
        stack.extend(current.children)
    return False


# ---------------------------------------------------------------------------
# Mutations (pure, return a new forest)
# ---------------------------------------------------------------------------


def _append_child(nodes: list[PageNode], parent_id: str, page: PageNode) -> tuple[list[PageNode], bool]:
    result: list[PageNode] = []
    inserted = False
    for node in nodes:
        if inserted:
            result.append(node)
        elif node.id == parent_id:
            result.append(replace(node, children=[*node.children, page]))
            inserted = True
        else:
            children, inserted = _append_child(node.children, parent_id, page)
            result.append(replace(node, children=children) if inserted else node)
    return result, inserted


def add_child(nodes: list[PageNode], parent_id: str | None, page: PageNode) -> list[PageNode]:
    """
    Append `page` to the children of `parent_id`, or to the root list when
    parent_id is None. An unknown parent falls back to a root append so the
    page is never dropped.
    """
    normalized = normalize_page(page)
    if parent_id:
        result, inserted = _append_child(nodes, parent_id, normalized)
        if inserted:
            return result
    return [*nodes, normalized]


def _insert_relative(
    nodes: list[PageNode],
    target_id: str,
    page: PageNode,
    position: Position,
) -> tuple[list[PageNode], bool]:
    result: list[PageNode] = []
    inserted = False
    for node in nodes:
        if inserted:
            result.append(node)
            continue
        if node.id == target_id:
            if position == "before":
                result.extend([page, node])
            else:
                result.extend([node, page])
            inserted = True
            continue
        children, inserted = _insert_relative(node.children, target_id, page, position)
        result.append(replace(node, children=children) if inserted else node)
    return result, inserted


def insert_before(nodes: list[PageNode], target_id: str, page: PageNode) -> tuple[list[PageNode], bool]:
    """
    Splice `page` immediately before `target_id`, at the target's depth.
    Returns (forest, inserted). When the target is missing the forest comes
    back unchanged with inserted=False; the caller must fall back to a root
    append.
    """
    result, inserted = _insert_relative(nodes, target_id, normalize_page(page), "before")
    return (result, True) if inserted else (list(nodes), False)


def insert_after(nodes: list[PageNode], target_id: str, page: PageNode) -> tuple[list[PageNode], bool]:
    """Mirror of insert_before, splicing after the target."""
    result, inserted = _insert_relative(nodes, target_id, normalize_page(page), "after")
    return (result, True) if inserted else (list(nodes), False)


def remove_page(nodes: list[PageNode], page_id: str) -> tuple[list[PageNode], PageNode | None]:
    """
    Detach the first node matching `page_id` (pre-order) with its whole
    subtree. Returns (forest, removed) — removed is None when absent.
    """
    result: list[PageNode] = []
    removed: PageNode | None = None
    for node in nodes:
        if removed is not None:
            result.append(node)
            continue
        if node.id == page_id:
            removed = node
            continue
        children, removed = remove_page(node.children, page_id)
        result.append(replace(node, children=children) if removed is not None else node)
    return result, removed


def update_page(
    nodes: list[PageNode],
    page_id: str,
    updater: Callable[[PageNode], PageNode],
) -> list[PageNode]:
    """
    Apply `updater` to the matching node's own fields. Its children are
    preserved whatever the updater returns. No-op when absent.
    """
    result: list[PageNode] = []
    found = False
    for node in nodes:
        if found:
            result.append(node)
        elif node.id == page_id:
            updated = updater(replace(node, children=list(node.children)))
            result.append(replace(updated, children=node.children))
            found = True
        else:
            children = update_page(node.children, page_id, updater)
            if children is not node.children:
                found = True
                result.append(replace(node, children=children))
            else:
                result.append(node)
    return result if found else nodes


def move_page(nodes: list[PageNode], page_id: str, target_id: str, position: Position = "before") -> list[PageNode]:
    """
    Remove `page_id` and reinsert it before/after `target_id`. A missing
    target appends the page at the root instead of losing it; a missing
    page returns the forest unchanged.

    Moving a page beside one of its own descendants is forbidden: callers
    check is_descendant() first.
    """
    remaining, removed = remove_page(nodes, page_id)
    if removed is None:
        return list(nodes)

    insert = insert_before if position == "before" else insert_after
    result, inserted = insert(remaining, target_id, removed)
    if inserted:
        return result
    return [*remaining, normalize_page(removed)]
