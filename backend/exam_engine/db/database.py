"""Database engine and session handling.

One ``Database`` is built per process by the application entry point and
handed to whoever needs sessions; nothing here connects at import time.
"""

import logging
from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine and the session factory."""

    def __init__(self, url: str, echo: bool = False):
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite") and ":memory:" in url:
            # Share the single in-memory database across sessions
            kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **kwargs)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self) -> None:
        """Create tables if they do not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database schema ready ({self.engine.url.drivername})")

    async def dispose(self) -> None:
        await self.engine.dispose()

    def session(self) -> AsyncSession:
        return self.session_factory()


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session from the app's database.

    Services commit their own writes; anything left uncommitted is rolled
    back when the session closes.
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
