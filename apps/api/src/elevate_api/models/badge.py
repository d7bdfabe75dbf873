"""Badge catalogue, earned badges and Learn tag grants."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from elevate_api.db.base import Base


class Badge(Base):
    __tablename__ = "badges"

    code = Column(String(64), primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    criteria = Column(JSON, nullable=False, default=dict)
    icon_url = Column(String, nullable=True)


class EarnedBadge(Base):
    """A badge held by a user. Rows are never removed by the grant engine."""

    __tablename__ = "earned_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_code", name="uq_earned_badges_user_badge"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_code = Column(String(64), ForeignKey("badges.code"), nullable=False)
    earned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class LearnTagGrant(Base):
    """Completion tag from Kajabi credited to a user."""

    __tablename__ = "learn_tag_grants"
    __table_args__ = (
        UniqueConstraint("user_id", "tag_name", name="uq_learn_tag_grants_user_tag"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tag_name = Column(String(128), nullable=False)
    granted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
