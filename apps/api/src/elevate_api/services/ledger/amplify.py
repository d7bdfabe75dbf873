"""Amplify approvals with rolling 7-day quotas and duplicate-session checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.locks import advisory_xact_lock, user_lock_key
from elevate_api.models.points_ledger import LedgerSource
from elevate_api.models.submission import ActivityCode, Submission, SubmissionStatus
from elevate_api.services.ledger.badges import grant_badges_for_user
from elevate_api.services.ledger.errors import (
    LedgerIntegrityError,
    SubmissionLimitError,
    SubmissionNotFoundError,
    SubmissionStateError,
)
from elevate_api.services.ledger.ledger import append_ledger_entry, approval_event_id
from elevate_api.services.ledger.scoring import amplify_points


DEFAULT_DUPLICATE_WINDOW_MINUTES = 45
WINDOW_DAYS = 7
PEER_LIMIT_NAME = "Peer training"
STUDENT_LIMIT_NAME = "Student training"


class AmplifyWarning(str, Enum):
    MISSING_SESSION_START_TIME = "MISSING_SESSION_START_TIME"
    MISSING_CITY = "MISSING_CITY"
    DUPLICATE_SESSION_SUSPECT = "DUPLICATE_SESSION_SUSPECT"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class AmplifyLocation(BaseModel):
    model_config = ConfigDict(extra="allow")

    city: str | None = None

    @field_validator("city", mode="before")
    @classmethod
    def _blank_city_is_missing(cls, value: Any) -> Any:
        return _blank_to_none(value)


class AmplifyPayload(BaseModel):
    """Evidence for a peer or student training session."""

    model_config = ConfigDict(extra="allow")

    peers_trained: int = Field(ge=0)
    students_trained: int = Field(ge=0)
    session_date: date
    session_start_time: time | None = None
    location: AmplifyLocation | None = None

    @field_validator("session_start_time", mode="before")
    @classmethod
    def _blank_start_time_is_missing(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @property
    def city(self) -> str | None:
        if self.location is None or not self.location.city:
            return None
        return self.location.city.strip() or None


@dataclass(frozen=True, slots=True)
class AmplifyCaps:
    peers_per_7d: int
    students_per_7d: int


@dataclass(slots=True)
class AmplifyApprovalResult:
    warnings: list[str] = field(default_factory=list)
    delta_points: int = 0
    event_time: datetime | None = None
    badges_granted: list[str] = field(default_factory=list)


@dataclass(slots=True)
class _PriorSession:
    peers: int
    students: int
    session_date: date
    start_time: time | None
    city: str | None


def local_instant(day: date, at: time | None, tz: ZoneInfo) -> datetime:
    """Interpret ``day`` and ``at`` (default midnight) in ``tz`` and return the UTC instant."""

    local = datetime.combine(day, at or time(0, 0), tzinfo=tz)
    return local.astimezone(timezone.utc)


def trailing_window(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Inclusive UTC bounds covering the seven local calendar days ending with ``day``."""

    start = local_instant(day - timedelta(days=WINDOW_DAYS - 1), None, tz)
    end = local_instant(day + timedelta(days=1), None, tz) - timedelta(milliseconds=1)
    return start, end


def _parse_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _parse_time(value: Any) -> time | None:
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        return None


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(int(value), 0)


def _coerce_prior(raw: Any) -> _PriorSession | None:
    data: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    session_date = _parse_date(data.get("session_date"))
    if session_date is None:
        return None
    location = data.get("location")
    city = location.get("city") if isinstance(location, Mapping) else None
    return _PriorSession(
        peers=_non_negative_int(data.get("peers_trained")),
        students=_non_negative_int(data.get("students_trained")),
        session_date=session_date,
        start_time=_parse_time(data.get("session_start_time")),
        city=(city.strip() or None) if isinstance(city, str) else None,
    )


def _select_warning(payload: AmplifyPayload, duplicate: bool) -> AmplifyWarning | None:
    if payload.session_start_time is None:
        return AmplifyWarning.MISSING_SESSION_START_TIME
    if payload.city is None:
        return AmplifyWarning.MISSING_CITY
    if duplicate:
        return AmplifyWarning.DUPLICATE_SESSION_SUSPECT
    return None


async def approve_amplify_submission(
    session: AsyncSession,
    *,
    submission_id: UUID,
    user_id: UUID,
    payload: AmplifyPayload | Mapping[str, Any],
    org_timezone: str,
    caps: AmplifyCaps,
    reviewer_id: str | None = None,
    duplicate_window_minutes: int = DEFAULT_DUPLICATE_WINDOW_MINUTES,
) -> AmplifyApprovalResult:
    """Approve a pending Amplify submission and credit its points.

    Serialised per user by an advisory lock so quota totals are never read
    stale. Raises ``SubmissionLimitError`` when either rolling cap would be
    exceeded; the caller's transaction must then be rolled back.
    """

    data = payload if isinstance(payload, AmplifyPayload) else AmplifyPayload.model_validate(payload)
    tz = ZoneInfo(org_timezone)

    await advisory_xact_lock(session, user_lock_key(ActivityCode.AMPLIFY.value, user_id))

    submission = await session.get(Submission, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    if submission.user_id != user_id:
        raise SubmissionStateError(f"Submission {submission_id} does not belong to user {user_id}")
    if submission.activity_code != ActivityCode.AMPLIFY:
        raise SubmissionStateError(f"Submission {submission_id} is not an Amplify submission")
    if submission.status != SubmissionStatus.PENDING:
        raise SubmissionStateError(
            f"Submission {submission_id} cannot be approved from status {submission.status.value}"
        )

    session_instant = local_instant(data.session_date, data.session_start_time, tz)
    window_start, window_end = trailing_window(data.session_date, tz)

    stmt = select(Submission.payload).where(
        Submission.user_id == user_id,
        Submission.activity_code == ActivityCode.AMPLIFY,
        Submission.status == SubmissionStatus.APPROVED,
        Submission.id != submission_id,
    )
    prior_payloads = (await session.execute(stmt)).scalars().all()

    peers_used = 0
    students_used = 0
    duplicate = False
    duplicate_window = timedelta(minutes=duplicate_window_minutes)
    new_city = data.city.lower() if data.city else None

    for raw in prior_payloads:
        prior = _coerce_prior(raw)
        if prior is None:
            logger.warning("Skipping approved Amplify submission with unreadable session date", user_id=str(user_id))
            continue
        prior_instant = local_instant(prior.session_date, prior.start_time, tz)
        if window_start <= prior_instant <= window_end:
            peers_used += prior.peers
            students_used += prior.students
        if (
            data.session_start_time is not None
            and prior.start_time is not None
            and new_city is not None
            and prior.city is not None
            and prior.city.lower() == new_city
            and abs(prior_instant - session_instant) <= duplicate_window
        ):
            duplicate = True

    warning = _select_warning(data, duplicate)
    warnings = [warning.value] if warning else []

    if peers_used + data.peers_trained > caps.peers_per_7d:
        raise SubmissionLimitError(PEER_LIMIT_NAME, peers_used + data.peers_trained, caps.peers_per_7d)
    if students_used + data.students_trained > caps.students_per_7d:
        raise SubmissionLimitError(STUDENT_LIMIT_NAME, students_used + data.students_trained, caps.students_per_7d)

    submission.status = SubmissionStatus.APPROVED
    submission.approval_org_timezone = org_timezone
    if reviewer_id is not None:
        submission.reviewer_id = reviewer_id

    delta = amplify_points(data.peers_trained, data.students_trained)
    appended = await append_ledger_entry(
        session,
        external_event_id=approval_event_id(submission_id),
        user_id=user_id,
        activity_code=ActivityCode.AMPLIFY,
        source=LedgerSource.FORM,
        delta_points=delta,
        event_time=session_instant,
        meta={"warnings": warnings} if warnings else {},
    )
    if not appended.created:
        raise LedgerIntegrityError(f"Approval entry for pending submission {submission_id} already exists")

    badges = await grant_badges_for_user(session, user_id)

    logger.info(
        "Amplify submission approved",
        submission_id=str(submission_id),
        user_id=str(user_id),
        delta_points=delta,
        peers_used=peers_used,
        students_used=students_used,
        warnings=warnings,
    )
    return AmplifyApprovalResult(
        warnings=warnings,
        delta_points=delta,
        event_time=session_instant,
        badges_granted=badges,
    )
