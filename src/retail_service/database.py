"""Database initialization helpers."""
from __future__ import annotations

from collections.abc import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import Settings, get_settings


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create a configured SQLAlchemy async engine."""

    settings = settings or get_settings()
    db_engine = create_async_engine(settings.database_url, echo=settings.echo_sql)
    if db_engine.dialect.name == "sqlite":
        # SQLite ignores ON DELETE clauses unless enabled per connection.
        event.listen(db_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return db_engine


engine = create_engine()
SessionFactory = async_sessionmaker(bind=engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield an :class:`AsyncSession` for FastAPI dependencies."""

    async with SessionFactory() as session:
        yield session


__all__ = [
    "Base",
    "create_engine",
    "engine",
    "SessionFactory",
    "get_session",
]
