"""Delivery receipts around the webhook engine, plus replay of unmatched events."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.models.kajabi_event import (
    TERMINAL_STATUSES,
    KajabiEvent,
    KajabiEventStatus,
    fetch_unmatched_events,
    mark_kajabi_event,
    record_kajabi_event,
)
from elevate_api.schemas.kajabi import KajabiPayloadError, KajabiTagEvent, parse_kajabi_payload
from elevate_api.services.kajabi.webhook import (
    KajabiProcessReason,
    KajabiProcessResult,
    compute_external_event_id,
    normalize_tag,
    process_kajabi_webhook,
)
from elevate_api.services.ledger.ledger import as_utc


STATUS_BY_REASON: dict[KajabiProcessReason, KajabiEventStatus] = {
    KajabiProcessReason.GRANTED: KajabiEventStatus.PROCESSED,
    KajabiProcessReason.ALREADY_PROCESSED: KajabiEventStatus.DUPLICATE,
    KajabiProcessReason.TAG_NOT_PROCESSED: KajabiEventStatus.IGNORED,
    KajabiProcessReason.USER_NOT_FOUND: KajabiEventStatus.QUEUED_UNMATCHED,
    KajabiProcessReason.STUDENT: KajabiEventStatus.STUDENT,
}


class KajabiReplayError(RuntimeError):
    """Base exception for receipt replay failures."""


class KajabiEventNotFoundError(KajabiReplayError):
    def __init__(self, event_id: UUID) -> None:
        super().__init__(f"Kajabi event {event_id} not found")
        self.event_id = event_id


@dataclass(slots=True)
class KajabiDeliveryOutcome:
    """What happened to one webhook delivery."""

    status: KajabiEventStatus
    external_event_id: str
    receipt: KajabiEvent
    result: KajabiProcessResult | None = None


async def _run_engine(
    session: AsyncSession,
    receipt: KajabiEvent,
    event: KajabiTagEvent,
    event_time: datetime,
    allowed_tags: Iterable[str],
) -> KajabiDeliveryOutcome:
    if event.event_type == "tag.removed":
        await mark_kajabi_event(session, event=receipt, status=KajabiEventStatus.IGNORED)
        return KajabiDeliveryOutcome(
            status=KajabiEventStatus.IGNORED,
            external_event_id=receipt.external_event_id,
            receipt=receipt,
        )

    result = await process_kajabi_webhook(session, event, event_time, allowed_tags=allowed_tags)
    status = STATUS_BY_REASON[result.reason]
    await mark_kajabi_event(
        session,
        event=receipt,
        status=status,
        user_id=result.user_id,
        points_awarded=result.points_awarded,
    )
    return KajabiDeliveryOutcome(
        status=status,
        external_event_id=receipt.external_event_id,
        receipt=receipt,
        result=result,
    )


async def ingest_kajabi_delivery(
    session: AsyncSession,
    event: KajabiTagEvent,
    event_time: datetime,
    *,
    raw_payload: dict[str, Any] | None,
    allowed_tags: Iterable[str],
) -> KajabiDeliveryOutcome:
    """Record the delivery, run the engine once and mirror its outcome on the receipt.

    Deliveries whose receipt already reached a terminal status are reported as
    duplicates without touching the ledger again.
    """

    external_event_id = compute_external_event_id(event, event_time)
    recorded = await record_kajabi_event(
        session,
        external_event_id=external_event_id,
        payload=raw_payload,
        event_type=event.event_type,
        tag_name_raw=event.tag.name,
        tag_name_norm=normalize_tag(event.tag.name),
        contact_id=event.contact.id,
        email=event.contact.email,
        event_time=as_utc(event_time),
    )
    receipt = recorded.event
    if not recorded.created and receipt.status in TERMINAL_STATUSES:
        logger.info(
            "Kajabi delivery deduplicated",
            external_event_id=external_event_id,
            previous_status=receipt.status.value,
        )
        return KajabiDeliveryOutcome(
            status=KajabiEventStatus.DUPLICATE,
            external_event_id=external_event_id,
            receipt=receipt,
        )

    outcome = await _run_engine(session, receipt, event, event_time, allowed_tags)
    logger.info(
        "Kajabi delivery handled",
        external_event_id=external_event_id,
        status=outcome.status.value,
        user_id=str(outcome.result.user_id) if outcome.result and outcome.result.user_id else None,
    )
    return outcome


@dataclass(slots=True)
class KajabiReplaySummary:
    processed: int = 0
    counts: dict[str, int] = field(default_factory=dict)


async def _replay_one(
    session: AsyncSession,
    receipt: KajabiEvent,
    allowed_tags: Iterable[str],
) -> KajabiEventStatus:
    receipt.replay_attempts = (receipt.replay_attempts or 0) + 1
    try:
        event = parse_kajabi_payload(receipt.payload_json)
    except KajabiPayloadError as exc:
        logger.warning("Stored Kajabi payload is unreadable", receipt_id=str(receipt.id), error=str(exc))
        await mark_kajabi_event(session, event=receipt, status=KajabiEventStatus.FAILED, error=str(exc))
        return KajabiEventStatus.FAILED

    event_time = as_utc(receipt.event_time) if receipt.event_time else datetime.now(timezone.utc)
    outcome = await _run_engine(session, receipt, event, event_time, allowed_tags)
    return outcome.status


async def replay_unmatched_events(
    session: AsyncSession,
    *,
    allowed_tags: Iterable[str],
    limit: int = 50,
    event_id: UUID | None = None,
) -> KajabiReplaySummary:
    """Re-run receipts that were waiting for a user to register.

    With ``event_id`` only that receipt is replayed; terminal receipts are
    counted as ``skipped``.
    """

    tags = list(allowed_tags)
    if event_id is not None:
        receipt = await session.get(KajabiEvent, event_id)
        if receipt is None:
            raise KajabiEventNotFoundError(event_id)
        receipts = [receipt]
    else:
        receipts = await fetch_unmatched_events(session, limit=limit)

    counts: Counter[str] = Counter()
    for receipt in receipts:
        if receipt.status in TERMINAL_STATUSES:
            counts["skipped"] += 1
            continue
        status = await _replay_one(session, receipt, tags)
        counts[status.value] += 1

    summary = KajabiReplaySummary(processed=sum(counts.values()) - counts["skipped"], counts=dict(counts))
    logger.info("Kajabi replay finished", processed=summary.processed, counts=summary.counts)
    return summary
