from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for SQLAlchemy ORM models."""


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the provided database URL."""

    return create_async_engine(db_url, future=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async sessionmaker bound to the given engine."""

    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables for all ORM models."""

    # Register ORM tables on Base.metadata before create_all.
    from memory_engine.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if engine.dialect.name == "sqlite":
            await _migrate_sqlite_schema(conn)


async def _migrate_sqlite_schema(conn) -> None:
    """Apply lightweight SQLite migrations for additive columns."""

    # Records written before two-tier rendering have no headline column.
    await _ensure_sqlite_column(
        conn,
        table_name="memories",
        column_name="headline",
        column_definition="headline TEXT",
    )
    await _ensure_sqlite_column(
        conn,
        table_name="memories",
        column_name="awaiting_implementation",
        column_definition="awaiting_implementation BOOLEAN NOT NULL DEFAULT 0",
    )
    await _ensure_sqlite_column(
        conn,
        table_name="memories",
        column_name="awaiting_decision",
        column_definition="awaiting_decision BOOLEAN NOT NULL DEFAULT 0",
    )


async def _ensure_sqlite_column(
    conn,
    *,
    table_name: str,
    column_name: str,
    column_definition: str,
) -> None:
    result = await conn.execute(text(f"PRAGMA table_info({table_name})"))
    existing_columns = {row[1] for row in result.fetchall()}
    if column_name in existing_columns:
        return
    await conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {column_definition}"))
