"""SQLAlchemy engine and sessions for the SQL document store."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from fieldbook.config.settings import Settings
from fieldbook.logging import get_logger, redact_credentials
from fieldbook.storage.db_models import Base

logger = get_logger(__name__)


class Database:
    """Owns the async engine behind SqlDocumentStore."""

    def __init__(self, settings: Settings):
        """
        Initialize database handle; call connect() before use.

        Args:
            settings: Settings providing database_url and log_level
        """
        self.settings = settings
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        """Whether an engine has been created."""
        return self._engine is not None

    async def connect(self) -> None:
        """Create the engine and session factory once."""
        if self._engine is not None:
            return

        engine_options = {
            "echo": self.settings.log_level.upper() == "DEBUG",
            "pool_pre_ping": True,
        }
        # SQLite pools do not accept sizing arguments
        if not self.settings.database_url.startswith("sqlite"):
            engine_options.update(pool_size=10, max_overflow=20)

        self._engine = create_async_engine(self.settings.database_url, **engine_options)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info("database_connected", url=redact_credentials(self.settings.database_url))

    async def disconnect(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine is None:
            return

        await self._engine.dispose()
        self._engine = None
        self._session_factory = None

        logger.info("database_disconnected")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Unit of work: commits when the block exits cleanly, rolls back otherwise."""
        if self._session_factory is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_tables(self) -> None:
        """Create the documents table; deployments run the alembic migration instead."""
        if self._engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("database_tables_created")
