"""Migration environment for the worlds schema (raw SQL revisions, no ORM metadata)."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _sync_url() -> str:
    """
    DATABASE_URL (or `alembic -x dburl=...`) in a form sync sqlalchemy
    accepts. The asyncpg pool reads the same variable.
    """
    url = context.get_x_argument(as_dictionary=True).get("dburl") or os.environ.get("DATABASE_URL", "")
    if not url:
        raise RuntimeError("DATABASE_URL environment variable is required for migrations")
    for prefix in ("postgres://", "postgresql+asyncpg://"):
        if url.startswith(prefix):
            return "postgresql://" + url[len(prefix) :]
    return url


def run_offline(url: str) -> None:
    """Emit SQL to stdout (`alembic upgrade head --sql`)."""
    context.configure(url=url, target_metadata=None, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    engine = create_engine(url)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=None)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline(_sync_url())
else:
    run_online(_sync_url())
