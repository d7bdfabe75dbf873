"""Evidence submissions for the five LEAPS stages."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from elevate_api.db.base import Base


class ActivityCode(str, Enum):
    """Stage identifiers an educator progresses through."""

    LEARN = "LEARN"
    EXPLORE = "EXPLORE"
    AMPLIFY = "AMPLIFY"
    PRESENT = "PRESENT"
    SHINE = "SHINE"


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"


class SubmissionVisibility(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class Submission(Base):
    """Evidence submitted by a user for one activity."""

    __tablename__ = "submissions"
    __table_args__ = (
        Index("ix_submissions_user_activity_status", "user_id", "activity_code", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_code = Column(SqlEnum(ActivityCode, name="activity_code_enum"), nullable=False)
    status = Column(
        SqlEnum(SubmissionStatus, name="submission_status_enum"),
        nullable=False,
        default=SubmissionStatus.PENDING,
        server_default=SubmissionStatus.PENDING.value,
    )
    visibility = Column(
        SqlEnum(SubmissionVisibility, name="submission_visibility_enum"),
        nullable=False,
        default=SubmissionVisibility.PRIVATE,
        server_default=SubmissionVisibility.PRIVATE.value,
    )
    payload = Column(JSON, nullable=False, default=dict)
    reviewer_id = Column(String(64), nullable=True)
    review_note = Column(Text, nullable=True)
    approval_org_timezone = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
