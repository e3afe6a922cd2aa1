"""
Database connection pool and RLS-scoped connection managers.

All database access goes through owner_conn() or system_conn().
Never use pool.acquire() directly outside this module.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager

import asyncpg

from backend import config

pool: asyncpg.Pool | None = None


async def init_pool() -> None:
    """
    Initialize the connection pool.
    Called once at application startup.
    """
    global pool
    pool = await asyncpg.create_pool(
        dsn=config.settings.DATABASE_URL,
        min_size=2,
        max_size=20,
        command_timeout=60,
        init=_init_connection,
    )


async def close_pool() -> None:
    """
    Close the connection pool.
    Called at application shutdown.
    """
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def _init_connection(conn: asyncpg.Connection) -> None:
    """JSONB columns decode to Python dicts/lists."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )
    await conn.set_type_codec(
        "json",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


@asynccontextmanager
async def owner_conn(owner_id: str):
    """
    Acquire a database connection scoped to one owner via RLS.

    Every query through this connection can only see/modify world rows
    belonging to this owner. Enforced by Postgres RLS policies. The whole
    block runs in one transaction.

    Usage:
        async with owner_conn(owner_id) as conn:
            rows = await conn.fetch("SELECT * FROM worlds ORDER BY position")

    Args:
        owner_id: Opaque identity string of the owner

    Yields:
        asyncpg.Connection with RLS context set
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            # All policies reference current_setting('app.owner_id')
            await conn.execute(
                "SELECT set_config('app.owner_id', $1, true)",
                owner_id,
            )
            yield conn


@asynccontextmanager
async def system_conn():
    """
    Acquire a database connection without owner scoping.

    For system operations only (migrations, maintenance, tests).

    Yields:
        asyncpg.Connection without RLS scoping
    """
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    async with pool.acquire() as conn:
        async with conn.transaction():
            # Empty app.owner_id bypasses the policies. LOCAL (true) scopes it to this transaction.
            await conn.execute("SELECT set_config('app.owner_id', '', true)")
            yield conn
