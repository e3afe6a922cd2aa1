"""Repository for world operations."""

from __future__ import annotations

import asyncpg

from backend.db import owner_conn
from backend.models.world import WorldRecord, world_document
from engine.kernel.types import World

_UPSERT = """
    INSERT INTO worlds (owner_id, id, name, position, data, created_at, updated_at)
    VALUES ($1, $2, $3, $4, $5, now(), now())
    ON CONFLICT (owner_id, id) DO UPDATE
    SET name = EXCLUDED.name,
        position = EXCLUDED.position,
        data = EXCLUDED.data,
        updated_at = CASE
            WHEN worlds.data IS DISTINCT FROM EXCLUDED.data OR worlds.name IS DISTINCT FROM EXCLUDED.name
            THEN now()
            ELSE worlds.updated_at
        END
"""


def _row_to_record(row: asyncpg.Record) -> WorldRecord:
    """Convert a database row to a WorldRecord model."""
    return WorldRecord(
        owner_id=row["owner_id"],
        id=row["id"],
        name=row["name"],
        position=row["position"],
        data=row["data"] or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def _fetch_all(conn: asyncpg.Connection, owner_id: str) -> list[WorldRecord]:
    rows = await conn.fetch(
        "SELECT * FROM worlds WHERE owner_id = $1 ORDER BY position, created_at",
        owner_id,
    )
    return [_row_to_record(row) for row in rows]


class WorldRepo:
    """All world-related database operations."""

    async def list_for_owner(self, owner_id: str) -> list[WorldRecord]:
        """
        List every world stored for an owner.

        Returns:
            WorldRecords in list order (position ASC)
        """
        async with owner_conn(owner_id) as conn:
            return await _fetch_all(conn, owner_id)

    async def replace_all(self, owner_id: str, worlds: list[World]) -> list[WorldRecord]:
        """
        Make the stored list exactly `worlds`, in order, in one transaction.

        Worlds missing from the list are deleted; the rest are upserted with
        their index as position.

        Returns:
            The re-read stored list
        """
        async with owner_conn(owner_id) as conn:
            await conn.execute(
                "DELETE FROM worlds WHERE owner_id = $1 AND NOT (id = ANY($2::text[]))",
                owner_id,
                [w.id for w in worlds],
            )
            for position, world in enumerate(worlds):
                await conn.execute(_UPSERT, owner_id, world.id, world.name, position, world_document(world))
            return await _fetch_all(conn, owner_id)

    async def create(self, owner_id: str, world: World) -> WorldRecord:
        """
        Append a world after the owner's existing ones.

        Returns:
            The newly stored WorldRecord
        """
        async with owner_conn(owner_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO worlds (owner_id, id, name, position, data, created_at, updated_at)
                VALUES (
                    $1, $2, $3,
                    (SELECT COALESCE(MAX(position) + 1, 0) FROM worlds WHERE owner_id = $1),
                    $4, now(), now()
                )
                RETURNING *
                """,
                owner_id,
                world.id,
                world.name,
                world_document(world),
            )
            return _row_to_record(row)

    async def delete_all(self, owner_id: str) -> int:
        """Delete every world of an owner. Returns the number of rows removed."""
        async with owner_conn(owner_id) as conn:
            result = await conn.execute("DELETE FROM worlds WHERE owner_id = $1", owner_id)
            return int(result.split()[-1])
