"""Alembic environment for the website schema.

Runs migrations over the application's asyncpg engine, so no second
PostgreSQL driver is needed:
  alembic upgrade head

The version table lives in the website schema alongside the tables it tracks.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from src.contact_hub.config import get_settings
from src.contact_hub.contacts import models  # noqa: F401  (registers tables)
from src.contact_hub.core.database import WEBSITE_SCHEMA, WebsiteBase

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = WebsiteBase.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    settings = get_settings()

    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table_schema=WEBSITE_SCHEMA,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        version_table_schema=WEBSITE_SCHEMA,
        include_schemas=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    settings = get_settings()
    connectable = create_async_engine(settings.DATABASE_URL, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        # The version table is created inside the schema, so it must exist first
        await connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{WEBSITE_SCHEMA}"'))
        await connection.commit()
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
