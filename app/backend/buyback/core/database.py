"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)

from .config import Settings, DatabaseConfig
from .logging import get_logger

logger = get_logger(__name__)


class Database:
    """Owns the async engine and session factory.

    Constructed once at startup and handed to repositories and the
    orchestrator; nothing in the package reaches for a global engine.
    """

    def __init__(self, url: str, echo: bool = False, **engine_options):
        self.url = DatabaseConfig.get_database_url(url, async_driver=True)
        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=echo,
            **engine_options
        )
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "Database":
        return cls(
            config.database_url,
            echo=config.debug,
            **DatabaseConfig.get_engine_config(config)
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session with automatic commit/rollback.

        Usage:
            async with database.session() as session:
                ...
        """
        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables in the database."""
        from buyback.models import Base

        logger.info("Creating database tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    async def close(self) -> None:
        logger.info("Closing database connections")
        await self.engine.dispose()

