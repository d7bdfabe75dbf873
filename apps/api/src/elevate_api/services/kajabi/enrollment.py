"""Invite a platform user to Kajabi and remember the linked contact."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.models.audit_log import record_audit_event
from elevate_api.models.user import User
from elevate_api.services.kajabi.client import KajabiClient, KajabiEnrollmentResult


KAJABI_INVITE = "KAJABI_INVITE"


class KajabiInviteError(RuntimeError):
    """Raised when an invite cannot be matched to a user or conflicts with an existing link."""


class KajabiInviteUserNotFoundError(KajabiInviteError):
    def __init__(self, user_id: UUID) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


@dataclass(slots=True)
class KajabiInviteResult:
    user_id: UUID | None
    enrollment: KajabiEnrollmentResult


async def invite_user(
    session: AsyncSession,
    client: KajabiClient,
    *,
    actor_id: str,
    user_id: UUID | None = None,
    email: str | None = None,
    name: str | None = None,
    offer_id: str | None = None,
) -> KajabiInviteResult:
    """Enroll a user (by id or email) in Kajabi and stamp ``kajabi_contact_id``."""

    user: User | None = None
    if user_id is not None:
        user = await session.get(User, user_id)
        if user is None:
            raise KajabiInviteUserNotFoundError(user_id)
    elif email:
        result = await session.execute(select(User).where(User.email == email.strip().lower()))
        user = result.scalar_one_or_none()

    target_email = user.email if user is not None else (email or "").strip().lower()
    if not target_email:
        raise KajabiInviteError("An email or a known user is required")
    target_name = name or (user.name if user is not None else target_email.split("@")[0])

    enrollment = await client.enroll_user(target_email, target_name, offer_id=offer_id)

    if user is not None and user.kajabi_contact_id != enrollment.contact_id:
        owner = await session.execute(select(User).where(User.kajabi_contact_id == enrollment.contact_id))
        other = owner.scalar_one_or_none()
        if other is not None and other.id != user.id:
            raise KajabiInviteError(
                f"Kajabi contact {enrollment.contact_id} is already linked to another user"
            )
        user.kajabi_contact_id = enrollment.contact_id

    await record_audit_event(
        session,
        actor_id=actor_id,
        action=KAJABI_INVITE,
        target_id=str(user.id) if user is not None else None,
        meta={
            "contact_id": enrollment.contact_id,
            "offer_id": offer_id,
            "offer_granted": enrollment.offer_granted,
        },
    )
    logger.info(
        "Kajabi invite sent",
        user_id=str(user.id) if user is not None else None,
        contact_id=enrollment.contact_id,
    )
    return KajabiInviteResult(user_id=user.id if user is not None else None, enrollment=enrollment)
