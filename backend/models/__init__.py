"""
Pydantic models for Enfield.

All data shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.world import (
    CreateWorldRequest,
    SyncRequest,
    WorldRecord,
    WorldResponse,
    WorldsResponse,
)

__all__ = [
    "WorldRecord",
    "SyncRequest",
    "CreateWorldRequest",
    "WorldsResponse",
    "WorldResponse",
]
