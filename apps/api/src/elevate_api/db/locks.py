"""Transaction-scoped locking and conflict-tolerant inserts.

PostgreSQL gets a real advisory lock keyed by a string. SQLite serialises
writers at the database level, so the lock degrades to a no-op there.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from loguru import logger
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase


def _dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def user_lock_key(scope: str, user_id: Any) -> str:
    return f"{scope}:{user_id}"


async def advisory_xact_lock(session: AsyncSession, key: str) -> None:
    """Block until the transaction holds the lock for ``key``.

    The lock is released when the surrounding transaction commits or rolls back.
    """

    dialect = _dialect_name(session)
    if dialect == "postgresql":
        await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
        return
    logger.debug("Advisory lock skipped for dialect", dialect=dialect, key=key)


async def insert_ignoring_conflicts(
    session: AsyncSession,
    model: type[DeclarativeBase],
    rows: Iterable[dict[str, Any]],
    *,
    conflict_columns: Sequence[str],
) -> int:
    """Insert ``rows`` and skip any that collide on ``conflict_columns``.

    Returns how many rows were actually written.
    """

    values = list(rows)
    if not values:
        return 0

    dialect = _dialect_name(session)
    if dialect == "postgresql":
        insert = postgresql.insert
    elif dialect == "sqlite":
        insert = sqlite.insert
    else:
        raise NotImplementedError(f"insert_ignoring_conflicts does not support dialect {dialect!r}")

    stmt = insert(model.__table__).values(values).on_conflict_do_nothing(index_elements=list(conflict_columns))
    result = await session.execute(stmt)
    return max(result.rowcount or 0, 0)
