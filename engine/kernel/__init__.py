"""
Enfield Kernel — the pure world engine.

Components:
  page_tree  — pure operations over a page forest
  normalize  — repair partial world records into canonical Worlds
  changes    — the WorldChange vocabulary and its wire codec
  reducer    — (worlds, changes) → worlds  (pure, deterministic)
  actions    — user mutations expressed as WorldChanges
  activity   — activity entries and their summaries
"""

from engine.kernel.actions import ActionResult, InvalidMoveError
from engine.kernel.changes import (
    SUPPORTED_CHANGE_TYPES,
    WorldChange,
    build_page_change,
    dump_changes,
    parse_change,
    parse_changes,
)
from engine.kernel.normalize import normalize_world, normalize_worlds
from engine.kernel.reducer import apply_change, apply_changes
from engine.kernel.types import (
    ACTIVITY_LIMIT,
    ActivityEntry,
    Actor,
    PageNode,
    World,
    WorldCollaborator,
)

__all__ = [
    "ACTIVITY_LIMIT",
    "ActionResult",
    "ActivityEntry",
    "Actor",
    "InvalidMoveError",
    "PageNode",
    "SUPPORTED_CHANGE_TYPES",
    "World",
    "WorldChange",
    "WorldCollaborator",
    "apply_change",
    "apply_changes",
    "build_page_change",
    "dump_changes",
    "normalize_world",
    "normalize_worlds",
    "parse_change",
    "parse_changes",
]
