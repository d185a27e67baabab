"""Async SQLAlchemy database setup."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def normalize_async_db_url(url: str) -> str:
    """Coerce sync driver URLs into the async drivers this project uses.

    sqlite:/// becomes sqlite+aiosqlite:/// and postgresql:// becomes
    postgresql+asyncpg://. Other URLs are returned unchanged.
    """
    u = (url or "").strip()
    if u.startswith("sqlite:///") and "aiosqlite" not in u:
        return u.replace("sqlite:///", "sqlite+aiosqlite:///")
    if u.startswith("postgres://"):
        u = u.replace("postgres://", "postgresql://", 1)
    if u.startswith("postgresql://") and "+asyncpg" not in u:
        return u.replace("postgresql://", "postgresql+asyncpg://", 1)
    return u


class Database:
    """Async database connection manager.

    Owns the engine and its connection pool. Each session() call checks a
    connection out of the pool for the lifetime of the context and returns
    it on every exit path.
    """

    def __init__(self, database_url: str):
        """Initialize database with connection URL.

        Args:
            database_url: SQLAlchemy database URL. Sync sqlite/postgres URLs
                are converted to their async driver variants.
        """
        database_url = normalize_async_db_url(database_url)
        is_sqlite = database_url.startswith("sqlite+aiosqlite://")

        connect_args = {}
        engine_kwargs = {}
        if is_sqlite:
            # Increase timeout to reduce "database is locked" errors
            connect_args["timeout"] = 30
        else:
            engine_kwargs["pool_pre_ping"] = True

        self._engine: AsyncEngine = create_async_engine(
            database_url,
            echo=False,
            connect_args=connect_args,
            **engine_kwargs,
        )
        self._async_session: async_sessionmaker[AsyncSession] = (
            async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        )

    @property
    def engine(self) -> AsyncEngine:
        """Get the async engine instance."""
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope around a series of operations.

        Usage:
            async with db.session() as session:
                session.add(model)
                # commit happens automatically on success
                # rollback happens automatically on exception

        Yields:
            AsyncSession: An async SQLAlchemy session.
        """
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def init_db(self) -> None:
        """Create all tables defined in Base.metadata if they don't exist.

        For production, use Alembic migrations instead.
        """
        # Register ORM models on Base.metadata.
        import refresher.models.orm  # noqa: F401

        async with self._engine.begin() as conn:
            if conn.dialect.name == "sqlite":
                await conn.execute(text("PRAGMA journal_mode=WAL"))
                await conn.execute(text("PRAGMA busy_timeout=30000"))
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections and dispose of the engine."""
        await self._engine.dispose()
