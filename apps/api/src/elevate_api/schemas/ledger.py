from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# meta: schema: ledger-review


class ApproveSubmissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    point_adjustment: int = Field(0, alias="pointAdjustment")
    review_note: str | None = Field(None, alias="reviewNote")


class RejectSubmissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    review_note: str | None = Field(None, alias="reviewNote")


class RevokeSubmissionRequest(BaseModel):
    reason: str | None = None


class ReviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    submission_id: UUID = Field(..., alias="submissionId")
    status: str
    delta_points: int = Field(0, alias="deltaPoints")
    warnings: list[str] = Field(default_factory=list)
    badges_granted: list[str] = Field(default_factory=list, alias="badgesGranted")


class UserPointsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    user_id: UUID = Field(..., alias="userId")
    total_points: int = Field(..., alias="totalPoints")
    points_by_activity: dict[str, int] = Field(default_factory=dict, alias="pointsByActivity")
    badges: list[str] = Field(default_factory=list)


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    rank: int
    user_id: UUID = Field(..., alias="userId")
    handle: str
    name: str
    total_points: int = Field(..., alias="totalPoints")


class LeaderboardResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    since: datetime | None = None
    entries: list[LeaderboardEntryResponse] = Field(default_factory=list)
