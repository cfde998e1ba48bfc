"""Async engines and sessions for the durable store.

Two logical routes are exposed: the write route always targets the primary,
while the read route targets a replica when one is configured. Each route owns
its own connection pool.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from catalog_api.core.config import get_settings


class Base(DeclarativeBase):
    """Declarative base class for SQLAlchemy models."""


def _build_engine(url: str | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine using application settings."""
    settings = get_settings()
    return create_async_engine(
        url or settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
    )


write_engine: AsyncEngine = _build_engine()
"""Engine bound to the write route (primary)."""

read_engine: AsyncEngine = _build_engine(get_settings().read_database_url)
"""Engine bound to the read route (replica, or primary when none is configured)."""

WriteSessionFactory = async_sessionmaker(write_engine, expire_on_commit=False)
ReadSessionFactory = async_sessionmaker(read_engine, expire_on_commit=False)


async def get_write_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a session on the write route."""
    async with WriteSessionFactory() as session:
        yield session


async def get_read_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a session on the read route."""
    async with ReadSessionFactory() as session:
        yield session


async def create_schema(engine: AsyncEngine | None = None) -> None:
    """Create missing tables on the primary. Existing tables are left untouched."""
    # Imported for its side effect of registering tables on Base.metadata.
    from catalog_api.persistence import models  # noqa: F401

    target = engine or write_engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engines() -> None:
    """Close both connection pools."""
    await write_engine.dispose()
    await read_engine.dispose()
