"""
Database Session Management
Exchange Trading Platform

Provides the async engine and the unit of work used by every engine
operation:
- One transaction per state transition
- Rollback and TRY_AGAIN on storage failure
- SQLite support for tests
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from exchange.core.config import DatabaseSettings
from exchange.core.exceptions import PersistenceError
from exchange.db.base import Base


def build_engine(config: DatabaseSettings) -> AsyncEngine:
    """Create an async engine for the configured URL."""
    url = config.async_url
    if url.startswith("sqlite"):
        # A single shared connection keeps in-memory databases alive
        return create_async_engine(
            url,
            echo=config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=True,
    )


class Database:
    """
    Owns the engine and session factory.

    Usage:
        db = Database(settings.db)
        async with db.transaction() as session:
            ...
    """

    def __init__(self, config: Optional[DatabaseSettings] = None, engine: Optional[AsyncEngine] = None):
        self.engine = engine or build_engine(config or DatabaseSettings())
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Run the block as one atomic commit.

        Domain errors roll back and propagate unchanged. Storage errors
        roll back and surface as PersistenceError.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Transaction rolled back: {e}")
                raise PersistenceError(str(e)) from e
            except BaseException:
                await session.rollback()
                raise

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Read-only session; nothing is committed.

        Storage errors roll back and surface as PersistenceError.
        """
        async with self.session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Read failed: {e}")
                raise PersistenceError(str(e)) from e

    async def create_all(self) -> None:
        """
        Create all tables.

        Production deployments manage the schema with migrations.
        """
        from exchange.db import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> bool:
        """Return True if the database answers."""
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
                return True
        except SQLAlchemyError as e:
            logger.warning(f"Database health check failed: {e}")
            return False

    async def close(self) -> None:
        """Close all database connections."""
        await self.engine.dispose()
