"""Append-only points ledger."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from elevate_api.db.base import Base
from elevate_api.models.submission import ActivityCode


class LedgerSource(str, Enum):
    MANUAL = "MANUAL"
    WEBHOOK = "WEBHOOK"
    FORM = "FORM"


class PointsLedgerEntry(Base):
    """Signed point delta keyed by a globally unique external event id.

    Rows are only ever inserted. Reversals are separate compensating rows.
    """

    __tablename__ = "points_ledger"
    __table_args__ = (
        Index("ix_points_ledger_user_event_time", "user_id", "event_time"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    external_event_id = Column(String(255), nullable=False, unique=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_code = Column(SqlEnum(ActivityCode, name="activity_code_enum"), nullable=False)
    source = Column(SqlEnum(LedgerSource, name="ledger_source_enum"), nullable=False)
    external_source = Column(String(64), nullable=True)
    delta_points = Column(Integer, nullable=False)
    event_time = Column(DateTime(timezone=True), nullable=False)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
