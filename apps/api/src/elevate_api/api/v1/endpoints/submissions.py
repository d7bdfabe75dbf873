"""Admin review endpoints: approve, reject and revoke submissions."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.api.dependencies.security import get_actor_id, require_admin_api_key
from elevate_api.core.settings import settings
from elevate_api.db.session import get_session
from elevate_api.models.submission import ActivityCode, Submission, SubmissionStatus
from elevate_api.schemas.ledger import (
    ApproveSubmissionRequest,
    RejectSubmissionRequest,
    ReviewResponse,
    RevokeSubmissionRequest,
)
from elevate_api.services.ledger import (
    AmplifyCaps,
    LedgerError,
    LedgerIntegrityError,
    SubmissionLimitError,
    SubmissionNotFoundError,
    SubmissionStateError,
    approve_amplify_submission,
    approve_submission,
    reject_submission,
    revoke_submission,
)

router = APIRouter(
    prefix="/admin/submissions",
    tags=["admin-submissions"],
    dependencies=[Depends(require_admin_api_key)],
)


def ledger_http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, SubmissionLimitError):
        return HTTPException(
            status_code=422,
            detail={
                "code": exc.code,
                "message": str(exc),
                "limit": exc.limit_name,
                "attempted": exc.attempted_total,
                "cap": exc.cap,
            },
        )
    if isinstance(exc, SubmissionNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    if isinstance(exc, (SubmissionStateError, LedgerIntegrityError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Ledger operation failed")


async def _get_submission(db: AsyncSession, submission_id: UUID) -> Submission:
    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    return submission


@router.post("/{submission_id}/approve", response_model=ReviewResponse)
async def approve_submission_endpoint(
    submission_id: UUID,
    body: ApproveSubmissionRequest | None = None,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Approve a pending submission. Amplify approvals enforce the rolling quotas."""

    body = body or ApproveSubmissionRequest()
    try:
        submission = await _get_submission(db, submission_id)
        if submission.activity_code == ActivityCode.AMPLIFY:
            result = await approve_amplify_submission(
                db,
                submission_id=submission.id,
                user_id=submission.user_id,
                payload=submission.payload or {},
                org_timezone=settings.org_timezone,
                caps=AmplifyCaps(
                    peers_per_7d=settings.amplify_peers_per_7d,
                    students_per_7d=settings.amplify_students_per_7d,
                ),
                reviewer_id=actor_id,
                duplicate_window_minutes=settings.amplify_duplicate_window_minutes,
            )
            if body.review_note:
                submission.review_note = body.review_note
            response = ReviewResponse(
                submission_id=submission_id,
                status=SubmissionStatus.APPROVED.value,
                delta_points=result.delta_points,
                warnings=result.warnings,
                badges_granted=result.badges_granted,
            )
        else:
            review = await approve_submission(
                db,
                submission_id=submission_id,
                reviewer_id=actor_id,
                point_adjustment=body.point_adjustment,
                review_note=body.review_note,
            )
            response = ReviewResponse(
                submission_id=submission_id,
                status=review.status.value,
                delta_points=review.delta_points,
                badges_granted=review.badges_granted,
            )
        await db.commit()
        return response
    except HTTPException:
        await db.rollback()
        raise
    except LedgerError as exc:
        await db.rollback()
        logger.info("Submission approval refused", submission_id=str(submission_id), error=str(exc))
        raise ledger_http_error(exc) from exc
    except ValidationError as exc:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Submission payload is not a valid Amplify payload",
        ) from exc
    except Exception as exc:
        await db.rollback()
        logger.error("Failed to approve submission", submission_id=str(submission_id), error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to approve submission") from exc


@router.post("/{submission_id}/reject", response_model=ReviewResponse)
async def reject_submission_endpoint(
    submission_id: UUID,
    body: RejectSubmissionRequest | None = None,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    body = body or RejectSubmissionRequest()
    try:
        review = await reject_submission(
            db,
            submission_id=submission_id,
            reviewer_id=actor_id,
            review_note=body.review_note,
        )
        await db.commit()
    except LedgerError as exc:
        await db.rollback()
        raise ledger_http_error(exc) from exc
    except Exception as exc:
        await db.rollback()
        logger.error("Failed to reject submission", submission_id=str(submission_id), error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to reject submission") from exc
    return ReviewResponse(submission_id=submission_id, status=review.status.value)


@router.post("/{submission_id}/revoke", response_model=ReviewResponse)
async def revoke_submission_endpoint(
    submission_id: UUID,
    body: RevokeSubmissionRequest | None = None,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_session),
) -> ReviewResponse:
    """Reverse an approval. Calling it again after success is a no-op."""

    body = body or RevokeSubmissionRequest()
    try:
        await revoke_submission(db, submission_id=submission_id, actor_id=actor_id, reason=body.reason)
        await db.commit()
    except LedgerError as exc:
        await db.rollback()
        raise ledger_http_error(exc) from exc
    except Exception as exc:
        await db.rollback()
        logger.error("Failed to revoke submission", submission_id=str(submission_id), error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to revoke submission") from exc
    return ReviewResponse(submission_id=submission_id, status=SubmissionStatus.REVOKED.value)
