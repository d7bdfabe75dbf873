from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.core.settings import settings
from elevate_api.db.session import get_session


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "disabled", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.warning("Database readiness check failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    if settings.kajabi_webhook_secret:
        components["kajabi_webhook"] = ComponentStatus(status="ready", detail="Signature verification enabled")
    elif settings.kajabi_allow_unsigned_webhook or settings.environment != "production":
        components["kajabi_webhook"] = ComponentStatus(status="disabled", detail="Unsigned deliveries accepted")
    else:
        components["kajabi_webhook"] = ComponentStatus(status="error", detail="KAJABI_WEBHOOK_SECRET missing")
        status = "degraded" if status == "ready" else status

    return ReadinessPayload(status=status, components=components)
