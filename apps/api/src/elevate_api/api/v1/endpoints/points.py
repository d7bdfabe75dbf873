"""Read-only point totals and leaderboard."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from elevate_api.db.session import get_session
from elevate_api.models.user import User
from elevate_api.schemas.ledger import LeaderboardEntryResponse, LeaderboardResponse, UserPointsResponse
from elevate_api.services.ledger import leaderboard, summarize_user_points

router = APIRouter(tags=["points"])


@router.get("/users/{user_id}/points", response_model=UserPointsResponse)
async def get_user_points(user_id: UUID, db: AsyncSession = Depends(get_session)) -> UserPointsResponse:
    if await db.get(User, user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    summary = await summarize_user_points(db, user_id)
    return UserPointsResponse(
        user_id=summary.user_id,
        total_points=summary.total_points,
        points_by_activity=summary.points_by_activity,
        badges=summary.badges,
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(20, ge=1, le=100),
    since: datetime | None = Query(None),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    rows = await leaderboard(db, limit=limit, since=since)
    return LeaderboardResponse(
        since=since,
        entries=[
            LeaderboardEntryResponse(
                rank=index,
                user_id=row.user_id,
                handle=row.handle,
                name=row.name,
                total_points=row.total_points,
            )
            for index, row in enumerate(rows, start=1)
        ],
    )
