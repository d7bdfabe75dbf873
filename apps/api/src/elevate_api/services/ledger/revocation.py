"""Reversal of approved submissions through compensating ledger entries."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.models.audit_log import record_audit_event
from elevate_api.models.submission import Submission, SubmissionStatus
from elevate_api.services.ledger.badges import grant_badges_for_user
from elevate_api.services.ledger.errors import (
    LedgerIntegrityError,
    SubmissionNotFoundError,
    SubmissionStateError,
)
from elevate_api.services.ledger.ledger import (
    append_ledger_entry,
    approval_event_id,
    get_ledger_entry,
    revocation_event_id,
)


SUBMISSION_REVOKED = "SUBMISSION_REVOKED"


async def revoke_submission(
    session: AsyncSession,
    *,
    submission_id: UUID,
    actor_id: str,
    reason: str | None = None,
) -> None:
    """Reverse an approved submission's award.

    Repeating the call after a successful revocation is a no-op. Earned
    badges are kept.
    """

    submission = await session.get(Submission, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)

    approved_id = approval_event_id(submission_id)
    revoked_id = revocation_event_id(submission_id)

    if await get_ledger_entry(session, revoked_id) is not None:
        logger.info("Submission already revoked", submission_id=str(submission_id))
        return

    if submission.status != SubmissionStatus.APPROVED:
        raise SubmissionStateError(
            f"Submission {submission_id} cannot be revoked from status {submission.status.value}"
        )

    original = await get_ledger_entry(session, approved_id)
    if original is None:
        raise LedgerIntegrityError(f"Approval ledger entry {approved_id} is missing")

    appended = await append_ledger_entry(
        session,
        external_event_id=revoked_id,
        user_id=original.user_id,
        activity_code=original.activity_code,
        source=original.source,
        external_source=original.external_source,
        delta_points=-original.delta_points,
        event_time=original.event_time,
        meta={"revoked_event_id": approved_id, "reason": reason} if reason else {"revoked_event_id": approved_id},
    )
    if not appended.created:
        # A concurrent revocation won the insert and owns the remaining writes.
        return

    submission.status = SubmissionStatus.REVOKED
    submission.reviewer_id = actor_id

    await record_audit_event(
        session,
        actor_id=actor_id,
        action=SUBMISSION_REVOKED,
        target_id=str(submission_id),
        meta={
            "reason": reason,
            "user_id": str(submission.user_id),
            "activity_code": submission.activity_code.value,
            "delta_points": -original.delta_points,
        },
    )
    await grant_badges_for_user(session, submission.user_id)

    logger.info(
        "Submission revoked",
        submission_id=str(submission_id),
        actor_id=actor_id,
        delta_points=-original.delta_points,
    )
