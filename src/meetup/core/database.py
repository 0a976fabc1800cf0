"""Async SQLAlchemy engine, declarative base, and session factories.

Provides:
- Base: Declarative base for the meeting, participation and notification tables
- build_engine(): Engine for a URL, with write-serialized transactions on SQLite
- get_engine(): Lazily created engine singleton from settings
- make_session_factory(): session_factory callable consumed by repositories
- unit_of_work(): One atomic transaction on a session from a session_factory
- init_db() / close_db(): lifespan hooks
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import aclosing, asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.meetup.config import get_settings

SessionFactory = Callable[[], AsyncGenerator[AsyncSession, None]]

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    SQLite ignores SELECT ... FOR UPDATE, so two units could both read the
    same occupancy before either writes. BEGIN IMMEDIATE makes the second
    unit wait until the first commits or rolls back.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def disable_driver_begin(dbapi_conn: Any, connection_record: Any) -> None:
        dbapi_conn.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine for ``url``."""
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=False,
            connect_args={"timeout": 30},
        )
        _serialize_sqlite_transactions(engine)
        return engine

    settings = get_settings()
    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=False,
    )


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().DATABASE_URL)
    return _engine


# ── Declarative Base ────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    """Base class for all persisted models."""


# ── Session Factories ───────────────────────────────────────────────────────


def make_session_factory(engine: AsyncEngine) -> SessionFactory:
    """Build a session_factory callable bound to ``engine``.

    Repositories iterate it with ``async for session in factory()`` so the
    session is always closed, and rolled back if a unit of work was left open.
    """

    async def session_factory() -> AsyncGenerator[AsyncSession, None]:
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    return session_factory


@asynccontextmanager
async def unit_of_work(session_factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """Run one transaction on a fresh session from ``session_factory``.

    Commits when the block exits normally; any exception rolls back every
    write made in the block, then propagates.
    """
    async with aclosing(session_factory()) as sessions:
        session = await anext(sessions)
        async with session.begin():
            yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables if they don't exist.

    Production schemas are managed by Alembic; this keeps local and test
    databases usable without running migrations.
    """
    # Register the models on Base.metadata
    from src.meetup.meetings import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
