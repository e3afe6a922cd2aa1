"""
Repository layer for Enfield.

All SQL lives here and ONLY here. No database access outside this module.
"""

from backend.repos.world_repo import WorldRepo

__all__ = [
    "WorldRepo",
]
