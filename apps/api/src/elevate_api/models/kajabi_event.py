"""Kajabi webhook receipts and helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, Text, func, select
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.base import Base


class KajabiEventStatus(str, Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    QUEUED_UNMATCHED = "queued_unmatched"
    STUDENT = "student"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {
        KajabiEventStatus.PROCESSED,
        KajabiEventStatus.DUPLICATE,
        KajabiEventStatus.IGNORED,
        KajabiEventStatus.STUDENT,
    }
)


class KajabiEvent(Base):
    """Durable receipt for every Kajabi webhook delivery."""

    __tablename__ = "kajabi_events"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    external_event_id = Column(String(255), nullable=False, unique=True)
    event_type = Column(String(64), nullable=True)
    tag_name_raw = Column(String(255), nullable=True)
    tag_name_norm = Column(String(255), nullable=True)
    contact_id = Column(String(128), nullable=True)
    email = Column(String, nullable=True, index=True)
    event_time = Column(DateTime(timezone=True), nullable=True)
    payload_json = Column("payload", JSON, nullable=True)
    status = Column(
        SqlEnum(KajabiEventStatus, name="kajabi_event_status_enum"),
        nullable=False,
        default=KajabiEventStatus.RECEIVED,
        index=True,
    )
    user_id = Column(PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    points_awarded = Column(Integer, nullable=False, default=0, server_default="0")
    replay_attempts = Column(Integer, nullable=False, default=0, server_default="0")
    last_error = Column(Text, nullable=True)
    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


@dataclass(slots=True)
class RecordedKajabiEvent:
    """Result container for receipt logging."""

    event: KajabiEvent
    created: bool


async def record_kajabi_event(
    session: AsyncSession,
    *,
    external_event_id: str,
    payload: dict[str, Any] | None,
    event_type: str | None = None,
    tag_name_raw: str | None = None,
    tag_name_norm: str | None = None,
    contact_id: str | None = None,
    email: str | None = None,
    event_time: datetime | None = None,
) -> RecordedKajabiEvent:
    """Persist a delivery receipt unless one exists for the same event id."""

    stmt = select(KajabiEvent).where(KajabiEvent.external_event_id == external_event_id)
    existing = (await session.execute(stmt)).scalar_one_or_none()
    if existing:
        return RecordedKajabiEvent(event=existing, created=False)

    event = KajabiEvent(
        external_event_id=external_event_id,
        event_type=event_type,
        tag_name_raw=tag_name_raw,
        tag_name_norm=tag_name_norm,
        contact_id=contact_id,
        email=email,
        event_time=event_time,
        payload_json=payload,
        status=KajabiEventStatus.RECEIVED,
    )
    try:
        async with session.begin_nested():
            session.add(event)
    except IntegrityError:
        found = (await session.execute(stmt)).scalar_one_or_none()
        if found is None:
            raise
        return RecordedKajabiEvent(event=found, created=False)

    return RecordedKajabiEvent(event=event, created=True)


async def mark_kajabi_event(
    session: AsyncSession,
    *,
    event: KajabiEvent,
    status: KajabiEventStatus,
    user_id: UUID | None = None,
    points_awarded: int = 0,
    error: str | None = None,
) -> KajabiEvent:
    """Update the receipt with the outcome of a processing attempt."""

    event.status = status
    if user_id is not None:
        event.user_id = user_id
    event.points_awarded = points_awarded
    event.last_error = error
    if status in TERMINAL_STATUSES:
        event.processed_at = datetime.now(timezone.utc)
    await session.flush()
    return event


async def fetch_unmatched_events(session: AsyncSession, *, limit: int = 50) -> list[KajabiEvent]:
    """Return receipts still waiting for a matching user, oldest first."""

    stmt = (
        select(KajabiEvent)
        .where(KajabiEvent.status == KajabiEventStatus.QUEUED_UNMATCHED)
        .order_by(KajabiEvent.received_at.asc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
