from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    actor_id = Column(String(64), nullable=False)
    action = Column(String(64), nullable=False)
    target_id = Column(String(64), nullable=True, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


async def record_audit_event(
    session: AsyncSession,
    *,
    actor_id: str,
    action: str,
    target_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(actor_id=actor_id, action=action, target_id=target_id, meta=meta or {})
    session.add(entry)
    await session.flush()
    return entry
