"""Async database engine construction and schema bootstrap."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

import capgate.models.database  # noqa: F401 - registers tables on SQLModel.metadata

if TYPE_CHECKING:
    from capgate.config.settings import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Build an async engine for the configured database URL."""
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(settings.database_url, echo=settings.debug)
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create the challenge and token tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
