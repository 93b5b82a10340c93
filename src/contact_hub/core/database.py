"""Async SQLAlchemy engine and session factory.

Provides:
- WebsiteBase: Declarative base for tables in the "website" schema
- get_session(): Session generator used by repositories (one session per operation)
- init_db() / close_db(): lifespan hooks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime

from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.contact_hub.config import get_settings

WEBSITE_SCHEMA = "website"

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            echo=False,
        )
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────

website_metadata = MetaData(schema=WEBSITE_SCHEMA)


class WebsiteBase(DeclarativeBase):
    """Base class for website schema models."""

    metadata = website_metadata


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to a pooled connection."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create the website schema and its tables if they don't exist."""
    # Register models on the metadata before create_all
    import src.contact_hub.contacts.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {WEBSITE_SCHEMA}"))
        await conn.run_sync(WebsiteBase.metadata.create_all)


async def ping_db() -> datetime:
    """Return the database server time; raises if the database is unreachable."""
    engine = get_engine()
    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT NOW()"))
        return result.scalar_one()


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
