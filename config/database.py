"""
config/database.py
Async SQLAlchemy store: declarative base, the Database handle and the
request-scoped session dependency.

The Database is constructed explicitly (see main.lifespan), stored on
app.state and handed to routes through get_db. Nothing here opens a
connection at import time.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


# ── Base Model ────────────────────────────────────────────────
class Base(DeclarativeBase):
    """All ORM models inherit from this."""
    pass


# ── Database handle ───────────────────────────────────────────
class Database:
    """Owns the engine and session factory for one process."""

    def __init__(self, url: str, **engine_kwargs: Any):
        self.url = url
        self.engine_kwargs = engine_kwargs
        self.engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings) -> "Database":
        kwargs: dict[str, Any] = {"echo": settings.DEBUG}
        if not settings.DATABASE_URL.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_pre_ping=True,      # Detect stale connections
                pool_recycle=3600,
            )
        return cls(settings.DATABASE_URL, **kwargs)

    async def connect(self) -> None:
        if self.engine is not None:
            return
        self.engine = create_async_engine(self.url, **self.engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,      # Don't expire after commit (async-safe)
            autoflush=False,
        )

    async def create_all(self) -> None:
        """Create all tables. Run during app startup."""
        if self.engine is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    async def disconnect(self) -> None:
        """Dispose engine. Run during app shutdown."""
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self._sessionmaker = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session scope: commits on success, rolls back on error."""
        if self._sessionmaker is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise


# ── Dependency ────────────────────────────────────────────────
async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: yields an async session from the app's Database.

    Usage:
        @router.get("/situations")
        async def list_situations(db: AsyncSession = Depends(get_db)):
            ...
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session


# ── Helpers ───────────────────────────────────────────────────
def insert_ignore_conflicts(session: AsyncSession, model, **values):
    """
    INSERT ... ON CONFLICT DO NOTHING for the session's dialect.
    Used for idempotent join rows (saved guidance, followed topics).
    """
    dialect = session.get_bind().dialect.name
    insert_fn = sqlite_insert if dialect == "sqlite" else pg_insert
    return insert_fn(model).values(**values).on_conflict_do_nothing()
