from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings


class Database:
    def __init__(self, database_url: str | None = None, **engine_kwargs):
        url = database_url or settings.database_url
        if url.startswith("postgresql"):
            engine_kwargs.setdefault("pool_pre_ping", True)
            engine_kwargs.setdefault("pool_recycle", 300)
            engine_kwargs.setdefault("pool_size", 10)  # Limit concurrent connections
            engine_kwargs.setdefault("max_overflow", 20)
            engine_kwargs.setdefault("pool_timeout", 30)
        self.engine = create_async_engine(
            url,
            echo=settings.database_echo,
            **engine_kwargs,
        )
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def close(self):
        """Close database engine with timeout to prevent hanging"""
        if self.engine:
            try:
                await asyncio.wait_for(self.engine.dispose(), timeout=2.0)
            except asyncio.TimeoutError:
                logging.warning("Database close timeout reached, forcing close")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()


# Global database instance
db = Database()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions"""
    async with db.get_session() as session:
        yield session
