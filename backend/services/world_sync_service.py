"""
World sync service.

Replays a client's change list against the owner's stored worlds with the
same reducer the client used for its optimistic state, persists the result
and returns the canonical list.
"""

from __future__ import annotations

import logging

from backend.repos.world_repo import WorldRepo
from engine.kernel.changes import WorldChange
from engine.kernel.normalize import normalize_world
from engine.kernel.reducer import apply_changes
from engine.kernel.types import World, generate_id

logger = logging.getLogger(__name__)


class WorldSyncService:
    """Server-side half of the sync protocol."""

    def __init__(self, repo: WorldRepo | None = None) -> None:
        self.repo = repo or WorldRepo()

    async def list_worlds(self, owner_id: str) -> list[World]:
        records = await self.repo.list_for_owner(owner_id)
        return [record.to_world() for record in records]

    async def apply(self, owner_id: str, changes: list[WorldChange]) -> list[World]:
        """
        Apply `changes` in order and persist.

        An empty change list returns the stored list untouched. Otherwise the
        stored list is replaced in one transaction: worlds the changes
        removed are deleted, the rest upserted in list order.
        """
        existing = await self.list_worlds(owner_id)
        if not changes:
            return existing

        next_state = apply_changes(existing, changes)
        removed = {w.id for w in existing} - {w.id for w in next_state}
        records = await self.repo.replace_all(owner_id, next_state)
        logger.info(
            "world_sync: owner=%s applied %d change(s), %d world(s), %d removed",
            owner_id,
            len(changes),
            len(records),
            len(removed),
        )
        return [record.to_world() for record in records]

    async def create_world(self, owner_id: str, name: str, description: str | None = None) -> World:
        """Store a new empty world owned by `owner_id` after the existing ones."""
        world = normalize_world(
            {
                "id": generate_id("world"),
                "name": name,
                "ownerId": owner_id,
                "description": description,
            }
        )
        record = await self.repo.create(owner_id, world)
        return record.to_world()
