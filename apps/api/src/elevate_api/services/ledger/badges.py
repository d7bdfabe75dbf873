"""Additive badge grants derived from tag grants and approved submissions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.locks import insert_ignoring_conflicts
from elevate_api.models.badge import EarnedBadge, LearnTagGrant
from elevate_api.models.submission import ActivityCode, Submission, SubmissionStatus


STARTER_TAGS = frozenset({"elevate-ai-1-completed", "elevate-ai-2-completed"})


@dataclass(slots=True)
class BadgeFacts:
    """Read-only state the badge rules are evaluated against."""

    learn_tags: frozenset[str] = frozenset()
    approved_counts: dict[ActivityCode, int] = field(default_factory=dict)

    def approved(self, activity: ActivityCode) -> int:
        return self.approved_counts.get(activity, 0)


@dataclass(frozen=True, slots=True)
class BadgeRule:
    code: str
    predicate: Callable[[BadgeFacts], bool]


BADGE_RULES: tuple[BadgeRule, ...] = (
    BadgeRule("STARTER", lambda facts: STARTER_TAGS <= facts.learn_tags),
    BadgeRule("IN_CLASS_INNOVATOR", lambda facts: facts.approved(ActivityCode.EXPLORE) >= 1),
    BadgeRule("COMMUNITY_VOICE", lambda facts: facts.approved(ActivityCode.PRESENT) >= 1),
)


async def load_badge_facts(session: AsyncSession, user_id: UUID) -> BadgeFacts:
    tag_rows = await session.execute(select(LearnTagGrant.tag_name).where(LearnTagGrant.user_id == user_id))
    count_rows = await session.execute(
        select(Submission.activity_code, func.count(Submission.id))
        .where(Submission.user_id == user_id, Submission.status == SubmissionStatus.APPROVED)
        .group_by(Submission.activity_code)
    )
    return BadgeFacts(
        learn_tags=frozenset(tag.strip().lower() for tag in tag_rows.scalars().all()),
        approved_counts={ActivityCode(code): int(count) for code, count in count_rows.all()},
    )


async def grant_badges_for_user(
    session: AsyncSession,
    user_id: UUID,
    *,
    rules: tuple[BadgeRule, ...] = BADGE_RULES,
) -> list[str]:
    """Grant every badge the user newly qualifies for.

    Existing badges are never removed. Returns the codes that were unheld and
    eligible at evaluation time; rows a concurrent caller already inserted are
    skipped silently.
    """

    held_rows = await session.execute(select(EarnedBadge.badge_code).where(EarnedBadge.user_id == user_id))
    held = set(held_rows.scalars().all())
    candidates = [rule for rule in rules if rule.code not in held]
    if not candidates:
        return []

    facts = await load_badge_facts(session, user_id)
    eligible = [rule.code for rule in candidates if rule.predicate(facts)]
    if not eligible:
        return []

    written = await insert_ignoring_conflicts(
        session,
        EarnedBadge,
        [{"user_id": user_id, "badge_code": code} for code in eligible],
        conflict_columns=["user_id", "badge_code"],
    )
    logger.info("Badges granted", user_id=str(user_id), badges=eligible, written=written)
    return eligible
