"""Alembic environment configuration for async SQLAlchemy.

Important:
- The service reads its DB URL from REFRESHER_DATABASE_URL.
- Alembic defaults to the URL in alembic.ini.

If these diverge (common in containers where the DB lives on a mounted volume),
migrations would apply to the wrong database, so the environment variable
wins when it is set.
"""

import asyncio
import os
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

from refresher.database import Base, normalize_async_db_url
from refresher.models.orm import (  # noqa: F401
    AudioRecordModel,
    ChunkModel,
    FlashcardModel,
    RefreshLockModel,
    RefreshRunModel,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _maybe_override_alembic_url_from_env() -> None:
    """Override alembic.ini sqlalchemy.url from env when configured."""
    raw = os.environ.get("REFRESHER_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if not raw:
        return

    url = normalize_async_db_url(raw)
    if url:
        config.set_main_option("sqlalchemy.url", url)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    _maybe_override_alembic_url_from_env()
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode with async engine."""
    _maybe_override_alembic_url_from_env()
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
