"""
Enfield configuration — all environment variables in one place.

Read from environment at runtime. Never hardcode secrets.
"""

from __future__ import annotations

import os


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Settings:
    """Application settings from environment variables."""

    # Database
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Auth
    JWT_SECRET: str = os.environ.get("JWT_SECRET", "")
    JWT_ALGORITHM: str = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_EXPIRY_HOURS: int = 24

    # Application
    ENVIRONMENT: str = os.environ.get("ENVIRONMENT", "development")

    # Identity fallback for local development: X-User-Id header, then the
    # userId query parameter, then DEFAULT_USER_ID.
    DEFAULT_USER_ID: str = os.environ.get("DEFAULT_USER_ID", "admin")

    @property
    def ALLOW_HEADER_IDENTITY(self) -> bool:
        return _flag("ALLOW_HEADER_IDENTITY", "true" if self.ENVIRONMENT == "development" else "false")

    # Sync
    SYNC_MAX_CHANGES: int = int(os.environ.get("SYNC_MAX_CHANGES", "500"))


# Singleton instance
settings = Settings()

if not settings.DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is required")
if not settings.JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is required")
