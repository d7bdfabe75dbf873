"""Kajabi tag-completion ingestion into Learn credits."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.locks import insert_ignoring_conflicts
from elevate_api.models.badge import LearnTagGrant
from elevate_api.models.points_ledger import LedgerSource
from elevate_api.models.submission import ActivityCode, Submission, SubmissionStatus, SubmissionVisibility
from elevate_api.models.user import User, UserTypeEnum
from elevate_api.schemas.kajabi import UNKNOWN_CONTACT_ID, KajabiTagEvent
from elevate_api.services.ledger.badges import grant_badges_for_user
from elevate_api.services.ledger.ledger import append_ledger_entry, as_utc, get_ledger_entry
from elevate_api.services.ledger.scoring import LEARN_TAG_POINTS


EXTERNAL_SOURCE = "kajabi"


class KajabiProcessReason(str, Enum):
    GRANTED = "granted"
    ALREADY_PROCESSED = "already_processed"
    TAG_NOT_PROCESSED = "tag_not_processed"
    USER_NOT_FOUND = "user_not_found"
    STUDENT = "student"


@dataclass(slots=True)
class KajabiProcessResult:
    success: bool
    reason: KajabiProcessReason
    user_id: UUID | None = None
    points_awarded: int = 0
    kajabi_contact_id: str | None = None
    external_event_id: str | None = None


@dataclass(slots=True)
class TagGrantResult:
    tag_name: str
    created: bool


def normalize_tag(name: str) -> str:
    return name.strip().lower()


def format_event_time(event_time: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""

    return as_utc(event_time).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def compute_external_event_id(event: KajabiTagEvent, event_time: datetime) -> str:
    """Provider event id when present, else a stable hash of contact, tag and time."""

    if event.event_id:
        return event.event_id
    source = f"{event.contact.id}:{normalize_tag(event.tag.name)}:{format_event_time(event_time)}"
    return "kajabi_" + hashlib.sha256(source.encode("utf-8")).hexdigest()


async def _find_user_by_contact(session: AsyncSession, contact_id: str) -> User | None:
    result = await session.execute(select(User).where(User.kajabi_contact_id == contact_id))
    return result.scalar_one_or_none()


async def _link_contact(session: AsyncSession, user: User, contact_id: str) -> User:
    """Stamp ``contact_id`` on ``user``; if another user already owns it, use that user."""

    try:
        async with session.begin_nested():
            user.kajabi_contact_id = contact_id
    except IntegrityError:
        owner = await _find_user_by_contact(session, contact_id)
        if owner is None:
            raise
        logger.info("Kajabi contact already linked elsewhere", contact_id=contact_id, user_id=str(owner.id))
        return owner
    logger.info("Linked Kajabi contact", contact_id=contact_id, user_id=str(user.id))
    return user


async def resolve_user(session: AsyncSession, contact_id: str, email: str | None) -> User | None:
    """Match by linked contact first, then by email, linking the contact on first sight."""

    known_contact = contact_id != UNKNOWN_CONTACT_ID
    user = await _find_user_by_contact(session, contact_id) if known_contact else None
    if user is not None or not email:
        return user
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is not None and known_contact and not user.kajabi_contact_id:
        user = await _link_contact(session, user, contact_id)
    return user


async def grant_learn_tag(
    session: AsyncSession,
    *,
    user_id: UUID,
    tag_name: str,
    granted_at: datetime,
) -> TagGrantResult:
    written = await insert_ignoring_conflicts(
        session,
        LearnTagGrant,
        [{"user_id": user_id, "tag_name": tag_name, "granted_at": as_utc(granted_at)}],
        conflict_columns=["user_id", "tag_name"],
    )
    return TagGrantResult(tag_name=tag_name, created=written > 0)


def _contact_id_for_payload(contact_id: str) -> int | str:
    return int(contact_id) if contact_id.isascii() and contact_id.isdigit() else contact_id


async def process_kajabi_webhook(
    session: AsyncSession,
    event: KajabiTagEvent,
    event_time: datetime,
    *,
    allowed_tags: Iterable[str],
) -> KajabiProcessResult:
    """Credit a Learn tag completion exactly once per logical event.

    Unknown users, ignored tags, students and repeat deliveries are returned
    as results; only storage failures raise.
    """

    tag_norm = normalize_tag(event.tag.name)
    allowed = {normalize_tag(tag) for tag in allowed_tags}
    if tag_norm not in allowed:
        logger.info("Kajabi tag not processed", tag=tag_norm)
        return KajabiProcessResult(success=True, reason=KajabiProcessReason.TAG_NOT_PROCESSED)

    contact_id = event.contact.id
    external_event_id = compute_external_event_id(event, event_time)

    user = await resolve_user(session, contact_id, event.contact.email)
    if user is None:
        logger.info("Kajabi contact has no matching user", contact_id=contact_id, external_event_id=external_event_id)
        return KajabiProcessResult(
            success=False,
            reason=KajabiProcessReason.USER_NOT_FOUND,
            kajabi_contact_id=contact_id,
            external_event_id=external_event_id,
        )

    if user.user_type == UserTypeEnum.STUDENT.value:
        logger.info("Kajabi event for student account skipped", user_id=str(user.id))
        return KajabiProcessResult(
            success=False,
            reason=KajabiProcessReason.STUDENT,
            user_id=user.id,
            kajabi_contact_id=contact_id,
            external_event_id=external_event_id,
        )

    tag_grant = await grant_learn_tag(session, user_id=user.id, tag_name=tag_norm, granted_at=event_time)

    already = await get_ledger_entry(session, external_event_id) is not None
    if not already:
        appended = await append_ledger_entry(
            session,
            external_event_id=external_event_id,
            user_id=user.id,
            activity_code=ActivityCode.LEARN,
            source=LedgerSource.WEBHOOK,
            external_source=EXTERNAL_SOURCE,
            delta_points=LEARN_TAG_POINTS,
            event_time=event_time,
            meta={"tag_name": tag_norm},
        )
        already = not appended.created

    if already:
        if tag_grant.created:
            await grant_badges_for_user(session, user.id)
        return KajabiProcessResult(
            success=True,
            reason=KajabiProcessReason.ALREADY_PROCESSED,
            user_id=user.id,
            kajabi_contact_id=contact_id,
            external_event_id=external_event_id,
        )

    session.add(
        Submission(
            user_id=user.id,
            activity_code=ActivityCode.LEARN,
            status=SubmissionStatus.APPROVED,
            visibility=SubmissionVisibility.PRIVATE,
            payload={
                "tag_name": event.tag.name,
                "kajabi_contact_id": _contact_id_for_payload(contact_id),
                "provider": "Kajabi",
                "auto_approved": True,
                "source": "tag_webhook",
                "external_event_id": external_event_id,
            },
        )
    )
    await session.flush()
    await grant_badges_for_user(session, user.id)

    logger.info(
        "Kajabi Learn credit granted",
        user_id=str(user.id),
        tag=tag_norm,
        external_event_id=external_event_id,
        points=LEARN_TAG_POINTS,
    )
    return KajabiProcessResult(
        success=True,
        reason=KajabiProcessReason.GRANTED,
        user_id=user.id,
        points_awarded=LEARN_TAG_POINTS,
        kajabi_contact_id=contact_id,
        external_event_id=external_event_id,
    )
