"""Append-only points ledger access and read models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.locks import insert_ignoring_conflicts
from elevate_api.models.badge import EarnedBadge
from elevate_api.models.points_ledger import LedgerSource, PointsLedgerEntry
from elevate_api.models.submission import ActivityCode
from elevate_api.models.user import User


EVENT_ID_VERSION = "v1"


def approval_event_id(submission_id: UUID | str) -> str:
    return f"submission:{submission_id}:approved:{EVENT_ID_VERSION}"


def revocation_event_id(submission_id: UUID | str) -> str:
    return f"submission:{submission_id}:revoked:{EVENT_ID_VERSION}"


def as_utc(value: datetime) -> datetime:
    """Normalise a timestamp to aware UTC. Naive values are assumed to be UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(slots=True)
class LedgerAppendResult:
    """Outcome of an idempotent ledger append.

    ``created`` is False when a row with the same external event id already
    existed, in which case nothing was written.
    """

    external_event_id: str
    delta_points: int
    created: bool


async def get_ledger_entry(session: AsyncSession, external_event_id: str) -> PointsLedgerEntry | None:
    stmt = select(PointsLedgerEntry).where(PointsLedgerEntry.external_event_id == external_event_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def append_ledger_entry(
    session: AsyncSession,
    *,
    external_event_id: str,
    user_id: UUID,
    activity_code: ActivityCode,
    source: LedgerSource,
    delta_points: int,
    event_time: datetime,
    external_source: str | None = None,
    meta: dict[str, Any] | None = None,
) -> LedgerAppendResult:
    """Insert a ledger row unless the external event id is already taken."""

    written = await insert_ignoring_conflicts(
        session,
        PointsLedgerEntry,
        [
            {
                "external_event_id": external_event_id,
                "user_id": user_id,
                "activity_code": activity_code,
                "source": source,
                "external_source": external_source,
                "delta_points": delta_points,
                "event_time": as_utc(event_time),
                "meta": meta,
            }
        ],
        conflict_columns=["external_event_id"],
    )
    created = written > 0
    if created:
        logger.info(
            "Ledger entry appended",
            external_event_id=external_event_id,
            user_id=str(user_id),
            activity_code=activity_code.value,
            delta_points=delta_points,
        )
    else:
        logger.info("Ledger entry already present", external_event_id=external_event_id)
    return LedgerAppendResult(external_event_id=external_event_id, delta_points=delta_points, created=created)


@dataclass(slots=True)
class UserPointsSummary:
    user_id: UUID
    total_points: int
    points_by_activity: dict[str, int] = field(default_factory=dict)
    badges: list[str] = field(default_factory=list)


async def summarize_user_points(session: AsyncSession, user_id: UUID) -> UserPointsSummary:
    """Sum a user's ledger deltas overall and per activity."""

    stmt = (
        select(PointsLedgerEntry.activity_code, func.coalesce(func.sum(PointsLedgerEntry.delta_points), 0))
        .where(PointsLedgerEntry.user_id == user_id)
        .group_by(PointsLedgerEntry.activity_code)
    )
    rows = (await session.execute(stmt)).all()
    by_activity = {ActivityCode(code).value: int(total) for code, total in rows}

    badge_rows = await session.execute(
        select(EarnedBadge.badge_code).where(EarnedBadge.user_id == user_id).order_by(EarnedBadge.badge_code)
    )
    return UserPointsSummary(
        user_id=user_id,
        total_points=sum(by_activity.values()),
        points_by_activity=by_activity,
        badges=list(badge_rows.scalars().all()),
    )


@dataclass(slots=True)
class LeaderboardRow:
    user_id: UUID
    handle: str
    name: str
    total_points: int


async def leaderboard(
    session: AsyncSession,
    *,
    limit: int = 20,
    since: datetime | None = None,
) -> list[LeaderboardRow]:
    """Rank users by ledger total, optionally counting only events after ``since``."""

    total = func.sum(PointsLedgerEntry.delta_points).label("total_points")
    stmt = (
        select(User.id, User.handle, User.name, total)
        .join(PointsLedgerEntry, PointsLedgerEntry.user_id == User.id)
        .group_by(User.id, User.handle, User.name)
        .order_by(total.desc(), User.handle.asc())
        .limit(limit)
    )
    if since is not None:
        stmt = stmt.where(PointsLedgerEntry.event_time >= as_utc(since))
    rows = (await session.execute(stmt)).all()
    return [
        LeaderboardRow(user_id=row.id, handle=row.handle, name=row.name, total_points=int(row.total_points or 0))
        for row in rows
    ]
