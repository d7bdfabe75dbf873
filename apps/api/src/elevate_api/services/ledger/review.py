"""Reviewer approve/reject path for flat-scored activities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.models.audit_log import record_audit_event
from elevate_api.models.points_ledger import LedgerSource
from elevate_api.models.submission import ActivityCode, Submission, SubmissionStatus
from elevate_api.services.ledger.badges import grant_badges_for_user
from elevate_api.services.ledger.errors import (
    LedgerIntegrityError,
    SubmissionNotFoundError,
    SubmissionStateError,
)
from elevate_api.services.ledger.ledger import append_ledger_entry, approval_event_id
from elevate_api.services.ledger.scoring import compute_points


SUBMISSION_APPROVED = "SUBMISSION_APPROVED"
SUBMISSION_REJECTED = "SUBMISSION_REJECTED"


@dataclass(slots=True)
class ReviewResult:
    submission_id: UUID
    status: SubmissionStatus
    delta_points: int = 0
    badges_granted: list[str] = field(default_factory=list)


async def _load_pending(session: AsyncSession, submission_id: UUID) -> Submission:
    submission = await session.get(Submission, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    if submission.status != SubmissionStatus.PENDING:
        raise SubmissionStateError(f"Submission {submission_id} already reviewed ({submission.status.value})")
    return submission


async def approve_submission(
    session: AsyncSession,
    *,
    submission_id: UUID,
    reviewer_id: str,
    point_adjustment: int = 0,
    review_note: str | None = None,
    now: datetime | None = None,
) -> ReviewResult:
    """Approve a non-Amplify submission and credit its nominal points plus any adjustment."""

    submission = await _load_pending(session, submission_id)
    if submission.activity_code == ActivityCode.AMPLIFY:
        raise SubmissionStateError("Amplify submissions are approved through approve_amplify_submission")

    delta = compute_points(submission.activity_code, submission.payload) + point_adjustment
    submission.status = SubmissionStatus.APPROVED
    submission.reviewer_id = reviewer_id
    submission.review_note = review_note

    appended = await append_ledger_entry(
        session,
        external_event_id=approval_event_id(submission_id),
        user_id=submission.user_id,
        activity_code=submission.activity_code,
        source=LedgerSource.MANUAL,
        delta_points=delta,
        event_time=now or datetime.now(timezone.utc),
        meta={"point_adjustment": point_adjustment} if point_adjustment else {},
    )
    if not appended.created:
        raise LedgerIntegrityError(f"Approval entry for pending submission {submission_id} already exists")

    await record_audit_event(
        session,
        actor_id=reviewer_id,
        action=SUBMISSION_APPROVED,
        target_id=str(submission_id),
        meta={"delta_points": delta, "point_adjustment": point_adjustment, "review_note": review_note},
    )
    badges = await grant_badges_for_user(session, submission.user_id)
    logger.info("Submission approved", submission_id=str(submission_id), delta_points=delta)
    return ReviewResult(
        submission_id=submission_id,
        status=SubmissionStatus.APPROVED,
        delta_points=delta,
        badges_granted=badges,
    )


async def reject_submission(
    session: AsyncSession,
    *,
    submission_id: UUID,
    reviewer_id: str,
    review_note: str | None = None,
) -> ReviewResult:
    submission = await _load_pending(session, submission_id)
    submission.status = SubmissionStatus.REJECTED
    submission.reviewer_id = reviewer_id
    submission.review_note = review_note

    await record_audit_event(
        session,
        actor_id=reviewer_id,
        action=SUBMISSION_REJECTED,
        target_id=str(submission_id),
        meta={"review_note": review_note},
    )
    logger.info("Submission rejected", submission_id=str(submission_id))
    return ReviewResult(submission_id=submission_id, status=SubmissionStatus.REJECTED)
