"""World routes — sync (GET/PATCH), list and create."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from backend import config
from backend.auth import get_current_owner
from backend.models.world import CreateWorldRequest, SyncRequest, WorldResponse, WorldsResponse
from backend.services.world_sync_service import WorldSyncService
from engine.kernel.changes import parse_changes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/worlds", tags=["worlds"])
sync_service = WorldSyncService()


def _server_error(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.get("/sync", status_code=200)
async def get_synced_worlds(owner_id: str = Depends(get_current_owner)) -> WorldsResponse:
    """Canonical world list for the current owner."""
    try:
        worlds = await sync_service.list_worlds(owner_id)
    except Exception as e:
        logger.exception("worlds-sync: failed to load worlds for %s", owner_id)
        raise _server_error("Failed to load worlds.") from e
    return WorldsResponse.from_worlds(worlds)


@router.patch("/sync", status_code=200)
async def sync_worlds(
    req: SyncRequest,
    owner_id: str = Depends(get_current_owner),
) -> WorldsResponse:
    """
    Apply a batch of WorldChanges and return the canonical list.

    Unrecognized or malformed changes are dropped before replay.
    """
    if len(req.changes) > config.settings.SYNC_MAX_CHANGES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"At most {config.settings.SYNC_MAX_CHANGES} changes per sync.",
        )

    changes = parse_changes(req.changes)
    if len(changes) != len(req.changes):
        logger.warning(
            "worlds-sync: dropped %d unsupported change(s) from %s",
            len(req.changes) - len(changes),
            owner_id,
        )

    try:
        worlds = await sync_service.apply(owner_id, changes)
    except Exception as e:
        logger.exception("worlds-sync: failed to apply %d change(s) for %s", len(changes), owner_id)
        raise _server_error("Failed to sync worlds.") from e
    return WorldsResponse.from_worlds(worlds)


@router.get("", status_code=200)
async def list_worlds(owner_id: str = Depends(get_current_owner)) -> WorldsResponse:
    """List the current owner's worlds."""
    return await get_synced_worlds(owner_id)


@router.post("", status_code=201)
async def create_world(
    req: CreateWorldRequest,
    owner_id: str = Depends(get_current_owner),
) -> WorldResponse:
    """Create an empty world owned by the caller."""
    name = (req.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required.")

    try:
        world = await sync_service.create_world(owner_id, name, req.description)
    except Exception as e:
        logger.exception("worlds: failed to create world for %s", owner_id)
        raise _server_error("Failed to create world.") from e
    return WorldResponse.from_world(world)
