from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import func, select

from elevate_api.models.points_ledger import LedgerSource, PointsLedgerEntry
from elevate_api.models.submission import ActivityCode, Submission, SubmissionStatus
from elevate_api.services.ledger import (
    AmplifyCaps,
    AmplifyWarning,
    SubmissionLimitError,
    SubmissionStateError,
    approve_amplify_submission,
    approval_event_id,
    trailing_window,
)
from elevate_api.services.ledger.ledger import as_utc


JAKARTA = "Asia/Jakarta"
DEFAULT_CAPS = AmplifyCaps(peers_per_7d=50, students_per_7d=200)


def amplify_payload(**overrides):
    payload = {
        "peers_trained": 2,
        "students_trained": 3,
        "session_date": "2025-05-06",
        "session_start_time": "08:00",
        "location": {"city": "Jakarta"},
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_amplify_approval_credits_points_at_session_instant(session_factory, make_user, make_submission):
    async with session_factory() as session:
        user = await make_user(session)
        submission = await make_submission(session, user, ActivityCode.AMPLIFY, amplify_payload())
        await session.commit()

        result = await approve_amplify_submission(
            session,
            submission_id=submission.id,
            user_id=user.id,
            payload=submission.payload,
            org_timezone=JAKARTA,
            caps=DEFAULT_CAPS,
            reviewer_id="reviewer-1",
        )
        await session.commit()

    assert result.warnings == []
    assert result.delta_points == 7
    assert result.event_time == datetime(2025, 5, 6, 1, 0, tzinfo=timezone.utc)

    async with session_factory() as session:
        entry = (
            await session.execute(
                select(PointsLedgerEntry).where(
                    PointsLedgerEntry.external_event_id == approval_event_id(submission.id)
                )
            )
        ).scalar_one()
        assert entry.delta_points == 7
        assert entry.source == LedgerSource.FORM
        assert as_utc(entry.event_time) == datetime(2025, 5, 6, 1, 0, tzinfo=timezone.utc)

        refreshed = await session.get(Submission, submission.id)
        assert refreshed.status == SubmissionStatus.APPROVED
        assert refreshed.approval_org_timezone == JAKARTA
        assert refreshed.reviewer_id == "reviewer-1"


@pytest.mark.asyncio
async def test_peer_quota_rejects_approval_and_persists_nothing(session_factory, make_user, make_submission):
    async with session_factory() as session:
        user = await make_user(session)
        await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(peers_trained=9, students_trained=0, session_date="2025-05-04"),
            status=SubmissionStatus.APPROVED,
        )
        pending = await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(peers_trained=2, students_trained=0),
        )
        await session.commit()
        pending_id = pending.id

        with pytest.raises(SubmissionLimitError) as excinfo:
            await approve_amplify_submission(
                session,
                submission_id=pending.id,
                user_id=user.id,
                payload=pending.payload,
                org_timezone=JAKARTA,
                caps=AmplifyCaps(peers_per_7d=10, students_per_7d=200),
            )
        await session.rollback()

    error = excinfo.value
    assert "Peer training" in str(error)
    assert error.limit_name == "Peer training"
    assert error.attempted_total == 11
    assert error.cap == 10

    async with session_factory() as session:
        refreshed = await session.get(Submission, pending_id)
        assert refreshed.status == SubmissionStatus.PENDING
        ledger_rows = await session.scalar(select(func.count(PointsLedgerEntry.id)))
        assert ledger_rows == 0


@pytest.mark.asyncio
async def test_student_quota_checked_independently(session_factory, make_user, make_submission):
    async with session_factory() as session:
        user = await make_user(session)
        pending = await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(peers_trained=0, students_trained=30),
        )
        await session.commit()

        with pytest.raises(SubmissionLimitError) as excinfo:
            await approve_amplify_submission(
                session,
                submission_id=pending.id,
                user_id=user.id,
                payload=pending.payload,
                org_timezone=JAKARTA,
                caps=AmplifyCaps(peers_per_7d=50, students_per_7d=25),
            )
        await session.rollback()

    assert excinfo.value.limit_name == "Student training"
    assert excinfo.value.attempted_total == 30


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("prior_date", "counts_toward_quota"),
    [
        ("2025-04-30", True),
        ("2025-04-29", False),
        ("2025-05-06", True),
    ],
)
async def test_quota_window_covers_seven_local_days(
    session_factory, make_user, make_submission, prior_date, counts_toward_quota
):
    async with session_factory() as session:
        user = await make_user(session)
        await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(
                peers_trained=9,
                students_trained=0,
                session_date=prior_date,
                session_start_time=None,
                location={"city": "Bandung"},
            ),
            status=SubmissionStatus.APPROVED,
        )
        pending = await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(peers_trained=2, students_trained=0),
        )
        await session.commit()

        caps = AmplifyCaps(peers_per_7d=10, students_per_7d=200)
        if counts_toward_quota:
            with pytest.raises(SubmissionLimitError):
                await approve_amplify_submission(
                    session,
                    submission_id=pending.id,
                    user_id=user.id,
                    payload=pending.payload,
                    org_timezone=JAKARTA,
                    caps=caps,
                )
            await session.rollback()
        else:
            result = await approve_amplify_submission(
                session,
                submission_id=pending.id,
                user_id=user.id,
                payload=pending.payload,
                org_timezone=JAKARTA,
                caps=caps,
            )
            await session.commit()
            assert result.delta_points == 4


def test_trailing_window_bounds_in_org_timezone():
    start, end = trailing_window(datetime(2025, 5, 6).date(), ZoneInfo(JAKARTA))

    assert start == datetime(2025, 4, 29, 17, 0, tzinfo=timezone.utc)
    assert end == datetime(2025, 5, 6, 16, 59, 59, 999000, tzinfo=timezone.utc)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("prior_start", "prior_city", "expected"),
    [
        ("08:30", "jakarta", [AmplifyWarning.DUPLICATE_SESSION_SUSPECT.value]),
        ("07:15", "JAKARTA", [AmplifyWarning.DUPLICATE_SESSION_SUSPECT.value]),
        ("09:00", "Jakarta", []),
        ("08:10", "Bandung", []),
        (None, "Jakarta", []),
    ],
)
async def test_duplicate_session_heuristic(
    session_factory, make_user, make_submission, prior_start, prior_city, expected
):
    async with session_factory() as session:
        user = await make_user(session)
        await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(session_start_time=prior_start, location={"city": prior_city}),
            status=SubmissionStatus.APPROVED,
        )
        pending = await make_submission(session, user, ActivityCode.AMPLIFY, amplify_payload())
        await session.commit()

        result = await approve_amplify_submission(
            session,
            submission_id=pending.id,
            user_id=user.id,
            payload=pending.payload,
            org_timezone=JAKARTA,
            caps=DEFAULT_CAPS,
        )
        await session.commit()

    assert result.warnings == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({"session_start_time": None, "location": None}, AmplifyWarning.MISSING_SESSION_START_TIME.value),
        ({"session_start_time": None}, AmplifyWarning.MISSING_SESSION_START_TIME.value),
        ({"location": {"city": "  "}}, AmplifyWarning.MISSING_CITY.value),
        ({"location": None}, AmplifyWarning.MISSING_CITY.value),
    ],
)
async def test_only_highest_priority_warning_is_reported(
    session_factory, make_user, make_submission, overrides, expected
):
    async with session_factory() as session:
        user = await make_user(session)
        # Same slot as the new submission, so a duplicate would also be flagged if it were checked first.
        await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(),
            status=SubmissionStatus.APPROVED,
        )
        pending = await make_submission(session, user, ActivityCode.AMPLIFY, amplify_payload(**overrides))
        await session.commit()

        result = await approve_amplify_submission(
            session,
            submission_id=pending.id,
            user_id=user.id,
            payload=pending.payload,
            org_timezone=JAKARTA,
            caps=DEFAULT_CAPS,
        )
        await session.commit()

    assert result.warnings == [expected]

    async with session_factory() as session:
        entry = (
            await session.execute(
                select(PointsLedgerEntry).where(
                    PointsLedgerEntry.external_event_id == approval_event_id(pending.id)
                )
            )
        ).scalar_one()
        assert entry.meta == {"warnings": [expected]}


@pytest.mark.asyncio
async def test_only_pending_amplify_submissions_can_be_approved(session_factory, make_user, make_submission):
    async with session_factory() as session:
        user = await make_user(session)
        approved = await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            amplify_payload(),
            status=SubmissionStatus.APPROVED,
        )
        explore = await make_submission(session, user, ActivityCode.EXPLORE, {"title": "AI lesson"})
        await session.commit()
        user_id = user.id
        submission_ids = (approved.id, explore.id)

        for submission_id in submission_ids:
            with pytest.raises(SubmissionStateError):
                await approve_amplify_submission(
                    session,
                    submission_id=submission_id,
                    user_id=user_id,
                    payload=amplify_payload(),
                    org_timezone=JAKARTA,
                    caps=DEFAULT_CAPS,
                )
            await session.rollback()


@pytest.mark.asyncio
async def test_unreadable_prior_payloads_are_skipped(session_factory, make_user, make_submission):
    async with session_factory() as session:
        user = await make_user(session)
        await make_submission(
            session,
            user,
            ActivityCode.AMPLIFY,
            {"peers_trained": 40, "session_date": "not-a-date"},
            status=SubmissionStatus.APPROVED,
        )
        pending = await make_submission(session, user, ActivityCode.AMPLIFY, amplify_payload(peers_trained=5))
        await session.commit()

        result = await approve_amplify_submission(
            session,
            submission_id=pending.id,
            user_id=user.id,
            payload=pending.payload,
            org_timezone=JAKARTA,
            caps=AmplifyCaps(peers_per_7d=10, students_per_7d=200),
        )
        await session.commit()

    assert result.delta_points == 13


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({"session_start_time": ""}, AmplifyWarning.MISSING_SESSION_START_TIME.value),
        ({"session_start_time": "   "}, AmplifyWarning.MISSING_SESSION_START_TIME.value),
        ({"location": {"city": ""}}, AmplifyWarning.MISSING_CITY.value),
    ],
)
async def test_blank_session_fields_warn_instead_of_blocking(
    session_factory, make_user, make_submission, overrides, expected
):
    async with session_factory() as session:
        user = await make_user(session)
        pending = await make_submission(session, user, ActivityCode.AMPLIFY, amplify_payload(**overrides))
        await session.commit()

        result = await approve_amplify_submission(
            session,
            submission_id=pending.id,
            user_id=user.id,
            payload=pending.payload,
            org_timezone=JAKARTA,
            caps=DEFAULT_CAPS,
        )
        await session.commit()

    assert result.warnings == [expected]
    assert result.delta_points == 7

    async with session_factory() as session:
        refreshed = await session.get(Submission, pending.id)
        assert refreshed.status == SubmissionStatus.APPROVED
