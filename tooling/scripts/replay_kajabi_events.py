"""Replay queued Kajabi deliveries once.

Intended usage: schedule via cron after user imports, or run by hand when a
participant reports a missing Learn credit.

Example:
    python tooling/scripts/replay_kajabi_events.py --limit 100
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from uuid import UUID

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay unmatched Kajabi webhook deliveries")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Override the number of receipts replayed in this sweep.",
    )
    parser.add_argument(
        "--event-id",
        type=UUID,
        default=None,
        help="Replay a single receipt by id regardless of its status.",
    )
    return parser.parse_args()


async def _run(limit: int | None, event_id: UUID | None) -> tuple[int, dict[str, int]]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from elevate_api.core.settings import settings  # type: ignore import-position
    from elevate_api.db.session import async_session  # type: ignore import-position
    from elevate_api.services.kajabi import replay_unmatched_events  # type: ignore import-position

    async with async_session() as session:
        summary = await replay_unmatched_events(
            session,
            allowed_tags=settings.allowed_learn_tags,
            limit=limit or settings.kajabi_replay_batch_size,
            event_id=event_id,
        )
        await session.commit()
    return summary.processed, summary.counts


def main() -> int:
    args = parse_args()
    processed, counts = asyncio.run(_run(args.limit, args.event_id))
    logger.success("Kajabi replay completed", processed=processed, counts=counts)
    return 0


if __name__ == "__main__":
    sys.exit(main())
