"""Database session management using SQLModel + async SQLAlchemy."""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from thumbai.config import get_settings


@lru_cache
def get_engine() -> AsyncEngine:
    """Build and cache the shared async engine."""
    settings = get_settings()
    kwargs: dict[str, object] = {"echo": settings.debug, "pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.database_pool_size
        kwargs["max_overflow"] = settings.database_max_overflow
    return create_async_engine(settings.database_url, **kwargs)


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the shared engine."""
    return async_sessionmaker(
        get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db() -> None:
    """Initialize database tables.

    Note: In production, use migrations instead.
    This is here for development convenience.
    """
    # Register tables on the metadata
    from thumbai.database import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await get_engine().dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session."""
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI routes."""
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
