"""
Database connection and session management with connection pooling.

Provides async SQLAlchemy engine and session factory. PostgreSQL (asyncpg)
is the production backend; SQLite (aiosqlite) is supported for local runs
and tests.
"""

import asyncio
import logging
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, StaticPool

from config import settings
from .exceptions import DatabaseConnectionError, DatabaseConstraintError, DatabaseOperationError
from .models import Base

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Convert postgres:// and postgresql:// to the asyncpg driver URL."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class Database:
    """Database connection manager."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    def _engine_options(self, database_url: str) -> dict:
        """Pool and driver options for the configured backend."""
        if database_url.startswith("sqlite"):
            if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
                # One shared connection, otherwise every session sees an empty database
                return {
                    "poolclass": StaticPool,
                    "connect_args": {"check_same_thread": False},
                }
            logger.info("Using NullPool for SQLite")
            return {"poolclass": NullPool}

        if settings.environment == "test":
            logger.info("Using NullPool for test environment")
            return {"poolclass": NullPool}

        logger.info(
            f"Database pool config: size={settings.db_pool_size}, "
            f"max_overflow={settings.db_max_overflow}, "
            f"timeout={settings.db_pool_timeout}s"
        )
        options = {
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.db_pool_size,          # Persistent connections
            "max_overflow": settings.db_max_overflow,    # Burst connections
            "pool_timeout": settings.db_pool_timeout,    # Wait time for connection
            "pool_recycle": settings.db_pool_recycle,    # Recycle after N seconds
            "pool_pre_ping": True,                       # Validate before use
        }
        if database_url.startswith("postgresql+asyncpg"):
            options["connect_args"] = {
                "server_settings": {
                    "application_name": settings.app_name,
                    "jit": "off",
                }
            }
        return options

    async def initialize(self) -> bool:
        """Initialize database connection and create tables. Safe to call concurrently."""
        if self._initialized:
            return True

        async with self._init_lock:
            if self._initialized:
                return True
            return await self._create_engine()

    async def _create_engine(self) -> bool:
        database_url = self.database_url or settings.database_url
        if not database_url:
            logger.warning("DATABASE_URL not configured")
            return False

        try:
            database_url = normalize_database_url(database_url)

            self.engine = create_async_engine(
                database_url,
                echo=settings.database_echo,
                **self._engine_options(database_url)
            )

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            # Create all tables
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True
            logger.info(f"Database initialized successfully ({self.engine.dialect.name})")
            return True

        except Exception as e:
            logger.error(f"Database initialization failed: {e}", exc_info=True)
            if self.engine:
                await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            return False

    async def close(self):
        """Close database connection."""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session. Commits on success, rolls back on error."""
        if not self._initialized:
            await self.initialize()

        if not self.session_factory:
            raise DatabaseConnectionError("Database not initialized")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.error(f"Constraint violation on commit: {e}")
                raise DatabaseConstraintError("Transaction violated a database constraint") from e
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database session error: {e}", exc_info=True)
                raise DatabaseOperationError("Database transaction failed") from e
            except Exception as e:
                await session.rollback()
                logger.error(f"Database session error: {e}")
                raise

    async def health_check(self) -> dict:
        """Perform health check on database."""
        try:
            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "initialized": self._initialized,
                "dialect": self.engine.dialect.name,
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }


# Singleton instance
_database: Optional[Database] = None


def get_database() -> Database:
    """Get the database singleton."""
    global _database
    if _database is None:
        _database = Database()
    return _database


async def init_database() -> bool:
    """Initialize the database."""
    db = get_database()
    return await db.initialize()


async def close_database():
    """Close the database connection."""
    global _database
    if _database:
        await _database.close()
        _database = None
