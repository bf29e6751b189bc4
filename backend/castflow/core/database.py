"""
Castflow Studio - Database Connection
======================================

One async engine per process. Request handlers get a session through
`get_db`; the realtime socket and the auto-save coordinators open their
own with `get_db_session` / `AsyncSessionLocal`, so several sessions may
write to the same database at once.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from castflow.core.config import settings

# Seconds a SQLite writer waits on a lock held by another session
SQLITE_BUSY_TIMEOUT = 15


class Base(DeclarativeBase):
    """Declarative base for the collaboration tables."""
    pass


# ==========================================================================
# Engine Setup
# ==========================================================================

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # Membership, collaborator and presence rows rely on ON DELETE CASCADE
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine() -> AsyncEngine:
    """Build the engine for DATABASE_URL (aiosqlite by default)."""
    if settings.is_sqlite:
        engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.DATABASE_ECHO,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
        )
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        settings.DATABASE_URL,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
    )


engine = create_engine()


# ==========================================================================
# Session Factory
# ==========================================================================

# Services read ids off rows after commit; keep them loaded
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@asynccontextmanager
async def _session_scope() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ==========================================================================
# Session Dependencies
# ==========================================================================

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session; commits on success, rolls back on error.

    Usage:
        @router.get("/{episode_id}/comments")
        async def list_comments(episode_id: UUID, db: DbSession): ...
    """
    async with _session_scope() as session:
        yield session


def get_db_session():
    """
    Session for work outside a request, such as a socket message.

    Usage:
        async with get_db_session() as db:
            await PresenceTracker(db, hub).leave(user_id, episode_id)
    """
    return _session_scope()


# ==========================================================================
# Lifecycle
# ==========================================================================

async def init_db() -> None:
    """Create missing tables. Migrations live in backend/alembic."""
    from castflow.core import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
