"""Rebuild Learn tag grants from processed Kajabi receipts.

Intended usage: run manually after restoring the ``learn_tag_grants`` table
or when a badge rule starts depending on a tag that was credited earlier.
Each processed receipt yields one grant for its user; existing grants are
left alone, then badges are re-evaluated for every touched user.

Example::
    python tooling/scripts/backfill_learn_tag_grants.py --limit 500 --apply

Without ``--apply`` the work is done inside a transaction that is rolled
back, so the summary shows what would change.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill Learn tag grants from Kajabi receipts")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Commit the rebuilt grants instead of rolling back.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Maximum number of receipts to scan.",
    )
    parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Number of receipts to skip, ordered by receipt time.",
    )
    return parser.parse_args()


async def _run(limit: int, offset: int, apply: bool) -> dict[str, int]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from sqlalchemy import select  # type: ignore import-position

    from elevate_api.db.locks import insert_ignoring_conflicts  # type: ignore import-position
    from elevate_api.db.session import async_session  # type: ignore import-position
    from elevate_api.models.badge import LearnTagGrant  # type: ignore import-position
    from elevate_api.models.kajabi_event import KajabiEvent, KajabiEventStatus  # type: ignore import-position
    from elevate_api.services.ledger import grant_badges_for_user  # type: ignore import-position

    async with async_session() as session:
        stmt = (
            select(KajabiEvent)
            .where(
                KajabiEvent.status == KajabiEventStatus.PROCESSED,
                KajabiEvent.user_id.is_not(None),
                KajabiEvent.tag_name_norm.is_not(None),
            )
            .order_by(KajabiEvent.received_at, KajabiEvent.id)
            .offset(offset)
            .limit(limit)
        )
        receipts = (await session.execute(stmt)).scalars().all()

        rows = {}
        for receipt in receipts:
            key = (receipt.user_id, receipt.tag_name_norm)
            if key not in rows:
                rows[key] = {
                    "user_id": receipt.user_id,
                    "tag_name": receipt.tag_name_norm,
                    "granted_at": receipt.event_time or receipt.received_at,
                }

        created = 0
        if rows:
            created = await insert_ignoring_conflicts(
                session,
                LearnTagGrant,
                list(rows.values()),
                conflict_columns=("user_id", "tag_name"),
            )

        users = {user_id for user_id, _ in rows}
        for user_id in users:
            await grant_badges_for_user(session, user_id)

        if apply:
            await session.commit()
        else:
            await session.rollback()

    return {"receipts": len(receipts), "grants_created": created, "users": len(users)}


def main() -> int:
    args = parse_args()
    if args.limit <= 0 or args.offset < 0:
        logger.error("Limit must be positive and offset non-negative", limit=args.limit, offset=args.offset)
        return 1

    summary = asyncio.run(_run(args.limit, args.offset, args.apply))
    logger.success(
        "Learn tag grant backfill completed",
        applied=args.apply,
        receipts_scanned=summary["receipts"],
        grants_created=summary["grants_created"],
        users_reevaluated=summary["users"],
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
