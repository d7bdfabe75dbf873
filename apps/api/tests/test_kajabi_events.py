from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from elevate_api.models.kajabi_event import KajabiEvent, KajabiEventStatus
from elevate_api.models.points_ledger import PointsLedgerEntry
from elevate_api.schemas.kajabi import parse_kajabi_payload
from elevate_api.services.kajabi import (
    KajabiEventNotFoundError,
    ingest_kajabi_delivery,
    replay_unmatched_events,
)


ALLOWED_TAGS = frozenset({"elevate-ai-1-completed", "elevate-ai-2-completed"})
EVENT_TIME = datetime(2025, 5, 6, 3, 0, tzinfo=timezone.utc)


def raw_delivery(event_type: str = "contact.tagged", email: str = "budi@example.com", **extra) -> dict:
    payload = {
        "event_type": event_type,
        "contact": {"id": 4242, "email": email},
        "tag": {"name": "elevate-ai-2-completed"},
        "created_at": "2025-05-06T03:00:00Z",
    }
    payload.update(extra)
    return payload


async def _ingest(session, raw):
    return await ingest_kajabi_delivery(
        session,
        parse_kajabi_payload(raw),
        EVENT_TIME,
        raw_payload=raw,
        allowed_tags=ALLOWED_TAGS,
    )


@pytest.mark.asyncio
async def test_unmatched_delivery_is_queued_then_replayed(session_factory, make_user):
    raw = raw_delivery()
    async with session_factory() as session:
        outcome = await _ingest(session, raw)
        await session.commit()
        receipt_id = outcome.receipt.id

    assert outcome.status == KajabiEventStatus.QUEUED_UNMATCHED

    async with session_factory() as session:
        user = await make_user(session, email="budi@example.com")
        await session.commit()

        summary = await replay_unmatched_events(session, allowed_tags=ALLOWED_TAGS)
        await session.commit()

    assert summary.processed == 1
    assert summary.counts == {"processed": 1}

    async with session_factory() as session:
        receipt = await session.get(KajabiEvent, receipt_id)
        assert receipt.status == KajabiEventStatus.PROCESSED
        assert receipt.user_id == user.id
        assert receipt.points_awarded == 20
        assert receipt.replay_attempts == 1
        assert receipt.processed_at is not None

        entries = await session.scalar(select(func.count(PointsLedgerEntry.id)))
        assert entries == 1

        summary = await replay_unmatched_events(session, allowed_tags=ALLOWED_TAGS)
        assert summary.processed == 0


@pytest.mark.asyncio
async def test_redelivery_after_processing_is_duplicate(session_factory, make_user):
    raw = raw_delivery()
    async with session_factory() as session:
        await make_user(session, email="budi@example.com")
        await session.commit()

        first = await _ingest(session, raw)
        await session.commit()
        second = await _ingest(session, raw)
        await session.commit()

        receipts = await session.scalar(select(func.count(KajabiEvent.id)))
        entries = await session.scalar(select(func.count(PointsLedgerEntry.id)))

    assert first.status == KajabiEventStatus.PROCESSED
    assert second.status == KajabiEventStatus.DUPLICATE
    assert second.external_event_id == first.external_event_id
    assert receipts == 1
    assert entries == 1


@pytest.mark.asyncio
async def test_tag_removed_and_unlisted_tags_are_ignored(session_factory, make_user):
    async with session_factory() as session:
        await make_user(session, email="budi@example.com")
        await session.commit()

        removed = await _ingest(session, raw_delivery(event_type="tag.removed"))
        unlisted = await _ingest(session, raw_delivery(tag={"name": "webinar-attended"}))
        await session.commit()

        entries = await session.scalar(select(func.count(PointsLedgerEntry.id)))

    assert removed.status == KajabiEventStatus.IGNORED
    assert unlisted.status == KajabiEventStatus.IGNORED
    assert entries == 0


@pytest.mark.asyncio
async def test_replay_marks_unreadable_payload_failed(session_factory):
    async with session_factory() as session:
        receipt = KajabiEvent(
            external_event_id="kajabi_broken",
            payload_json={"unexpected": True},
            status=KajabiEventStatus.QUEUED_UNMATCHED,
        )
        session.add(receipt)
        await session.commit()

        summary = await replay_unmatched_events(session, allowed_tags=ALLOWED_TAGS)
        await session.commit()

        refreshed = await session.get(KajabiEvent, receipt.id)

    assert summary.counts == {"failed": 1}
    assert refreshed.status == KajabiEventStatus.FAILED
    assert refreshed.last_error


@pytest.mark.asyncio
async def test_replay_single_event(session_factory, make_user):
    async with session_factory() as session:
        await make_user(session, email="budi@example.com")
        await session.commit()
        processed = await _ingest(session, raw_delivery())
        await session.commit()

        summary = await replay_unmatched_events(
            session,
            allowed_tags=ALLOWED_TAGS,
            event_id=processed.receipt.id,
        )
        assert summary.counts == {"skipped": 1}
        assert summary.processed == 0

        with pytest.raises(KajabiEventNotFoundError):
            await replay_unmatched_events(session, allowed_tags=ALLOWED_TAGS, event_id=uuid4())
