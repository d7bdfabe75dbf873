"""Async engine and session factory shared by routes, scripts and tests."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from elevate_api.core.settings import settings


def enable_sqlite_transactions(engine: AsyncEngine) -> AsyncEngine:
    """Make SQLite emit BEGIN itself so SAVEPOINTs nest inside the outer transaction."""

    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


engine = enable_sqlite_transactions(
    create_async_engine(settings.database_url, future=True, pool_pre_ping=True)
)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a session; routes own commit/rollback."""

    async with async_session() as session:
        yield session
