"""
Enfield FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend import db
from backend.routes import worlds as world_routes

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Opens the database pool on startup and closes it on shutdown.
    """
    await db.init_pool()
    logger.info("Database pool initialized")

    yield

    await db.close_pool()
    logger.info("Database pool closed")


app = FastAPI(
    title="Enfield",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(world_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime and connectivity probes."""
    return {"status": "ok"}
