"""Admin Kajabi operations: replay unmatched deliveries and send invites."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.api.dependencies.security import get_actor_id, require_admin_api_key
from elevate_api.core.settings import settings
from elevate_api.db.session import get_session
from elevate_api.schemas.kajabi import (
    KajabiInviteRequest,
    KajabiInviteResponse,
    KajabiReprocessRequest,
    KajabiReprocessResponse,
)
from elevate_api.services.kajabi import (
    KajabiClient,
    KajabiClientError,
    KajabiEventNotFoundError,
    KajabiInviteError,
    KajabiInviteUserNotFoundError,
    invite_user,
    replay_unmatched_events,
)

router = APIRouter(
    prefix="/admin/kajabi",
    tags=["admin-kajabi"],
    dependencies=[Depends(require_admin_api_key)],
)


def get_kajabi_client() -> KajabiClient:
    try:
        return KajabiClient.from_settings()
    except KajabiClientError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.post("/reprocess", response_model=KajabiReprocessResponse)
async def reprocess_kajabi_events(
    body: KajabiReprocessRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> KajabiReprocessResponse:
    """Replay queued deliveries whose users have since registered."""

    body = body or KajabiReprocessRequest(limit=settings.kajabi_replay_batch_size)
    try:
        summary = await replay_unmatched_events(
            db,
            allowed_tags=settings.allowed_learn_tags,
            limit=body.limit,
            event_id=body.event_id,
        )
        await db.commit()
    except KajabiEventNotFoundError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found") from exc
    except Exception as exc:
        await db.rollback()
        logger.error("Failed to reprocess Kajabi events", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to reprocess Kajabi events") from exc
    return KajabiReprocessResponse(processed=summary.processed, counts=summary.counts)


@router.post("/invite", response_model=KajabiInviteResponse)
async def invite_to_kajabi(
    body: KajabiInviteRequest,
    actor_id: str = Depends(get_actor_id),
    client: KajabiClient = Depends(get_kajabi_client),
    db: AsyncSession = Depends(get_session),
) -> KajabiInviteResponse:
    """Enroll a user in Kajabi, optionally granting the configured offer."""

    if body.user_id is None and not body.email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="userId or email is required")
    try:
        result = await invite_user(
            db,
            client,
            actor_id=actor_id,
            user_id=body.user_id,
            email=body.email,
            name=body.name,
            offer_id=body.offer_id or settings.kajabi_offer_id,
        )
        await db.commit()
    except KajabiInviteUserNotFoundError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except KajabiInviteError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except KajabiClientError as exc:
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception as exc:
        await db.rollback()
        logger.error("Failed to send Kajabi invite", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to send Kajabi invite") from exc
    return KajabiInviteResponse(
        contact_id=result.enrollment.contact_id,
        offer_granted=result.enrollment.offer_granted,
        user_id=result.user_id,
    )


@router.get("/health")
async def kajabi_health(client: KajabiClient = Depends(get_kajabi_client)) -> dict[str, str]:
    healthy = await client.health_check()
    return {"status": "ok" if healthy else "unreachable"}
