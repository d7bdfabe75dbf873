"""Kajabi tag webhook."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.core.settings import settings
from elevate_api.db.session import get_session
from elevate_api.models.kajabi_event import KajabiEventStatus
from elevate_api.schemas.kajabi import (
    KajabiPayloadError,
    KajabiWebhookResponse,
    extract_event_time,
    parse_kajabi_payload,
)
from elevate_api.services.kajabi.events import ingest_kajabi_delivery
from elevate_api.services.kajabi.signature import verify_kajabi_signature

router = APIRouter(prefix="/kajabi", tags=["kajabi-webhooks"])

HTTP_STATUS_BY_EVENT_STATUS: dict[KajabiEventStatus, int] = {
    KajabiEventStatus.PROCESSED: status.HTTP_200_OK,
    KajabiEventStatus.DUPLICATE: status.HTTP_200_OK,
    KajabiEventStatus.IGNORED: status.HTTP_202_ACCEPTED,
    KajabiEventStatus.QUEUED_UNMATCHED: status.HTTP_202_ACCEPTED,
    KajabiEventStatus.STUDENT: status.HTTP_403_FORBIDDEN,
}


def _unsigned_allowed() -> bool:
    return settings.kajabi_allow_unsigned_webhook or settings.environment != "production"


@router.post("/webhook", response_model=KajabiWebhookResponse)
async def kajabi_webhook(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> KajabiWebhookResponse:
    """Credit Learn completions from Kajabi tag events.

    Unknown contacts and ignored tags are acknowledged with 202 so Kajabi
    does not retry them.
    """

    body = await request.body()
    signature = request.headers.get("X-Kajabi-Signature")
    if not verify_kajabi_signature(body, signature, settings.kajabi_webhook_secret) and not _unsigned_allowed():
        logger.warning("Invalid Kajabi webhook signature", signature=signature)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body must be valid JSON") from exc

    try:
        event = parse_kajabi_payload(raw)
    except KajabiPayloadError as exc:
        logger.warning("Invalid Kajabi webhook payload", error=str(exc))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Kajabi webhook payload") from exc

    now = datetime.now(timezone.utc)
    event_time = extract_event_time(raw) or now
    replay = request.headers.get("X-Admin-Replay", "").strip().lower() == "true"
    max_skew = timedelta(seconds=settings.kajabi_webhook_max_skew_seconds)
    if abs(now - event_time) > max_skew and not replay:
        logger.warning("Kajabi webhook outside allowed window", event_time=event_time.isoformat(), replay=replay)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event timestamp outside allowed window",
        )

    try:
        outcome = await ingest_kajabi_delivery(
            db,
            event,
            event_time,
            raw_payload=raw,
            allowed_tags=settings.allowed_learn_tags,
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        logger.error(
            "Error processing Kajabi webhook",
            error=str(exc),
            contact_id=event.contact.id,
            tag=event.tag.name,
        )
        raise HTTPException(status_code=500, detail="Internal Server Error") from exc

    response.status_code = HTTP_STATUS_BY_EVENT_STATUS.get(outcome.status, status.HTTP_200_OK)
    result = outcome.result
    return KajabiWebhookResponse(
        status=outcome.status.value,
        reason=result.reason.value if result else None,
        external_event_id=outcome.external_event_id,
        user_id=result.user_id if result else None,
        points_awarded=result.points_awarded if result else 0,
    )
