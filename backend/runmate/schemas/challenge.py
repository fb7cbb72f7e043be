from __future__ import annotations
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Literal, List
from uuid import UUID
from datetime import datetime, timezone as dt_tz
from runmate.config import settings

ChallengeType = Literal["distance", "time", "activities", "elevation", "custom"]
GoalUnit = Literal["km", "hours", "activities", "meters", "seconds"]
WinCondition = Literal["first_to_complete", "highest_individual", "collective_goal"]
Visibility = Literal["public", "private", "friends_only"]
ChallengeStatus = Literal["upcoming", "active", "completed", "cancelled"]
ActivityType = Literal["running", "cycling", "walking", "swimming", "other"]
MilestoneKind = Literal["absolute", "percent"]

def _as_utc(v: datetime | None) -> datetime | None:
    if v is not None and v.tzinfo is None:
        return v.replace(tzinfo=dt_tz.utc)
    return v

class Goal(BaseModel):
    # target > 0 is a domain rule (InvalidGoal), checked by the engine
    target: float
    unit: GoalUnit
    is_collective: bool = False
    win_condition: WinCondition = "first_to_complete"

class WinnerReward(BaseModel):
    badge: str | None = None
    points: int = 100
    title: str | None = None

class MilestoneReward(BaseModel):
    at: float = Field(gt=0, description="absolute value in goal units, or percent of target when kind='percent'")
    kind: MilestoneKind = "absolute"
    badge: str | None = None
    points: int = 0
    title: str | None = None

    @model_validator(mode="after")
    def percent_in_range(self):
        if self.kind == "percent" and self.at > 100:
            raise ValueError("percent milestones must be at most 100")
        return self

class Rewards(BaseModel):
    winner: WinnerReward = Field(default_factory=WinnerReward)
    milestones: List[MilestoneReward] = Field(default_factory=list)

class ChallengeCreate(BaseModel):
    title: str = Field(min_length=2, max_length=100)
    description: str = Field(min_length=2, max_length=500)
    type: ChallengeType
    goal: Goal
    start_date: datetime
    end_date: datetime
    visibility: Visibility = "public"
    max_participants: int = Field(default_factory=lambda: settings.default_max_participants, ge=1)
    requires_approval: bool = False
    join_code: str | None = Field(default=None, min_length=4, max_length=12, pattern=r"^[A-Za-z0-9]+$")
    allowed_activity_types: List[ActivityType] = Field(default_factory=lambda: ["running"])
    rewards: Rewards = Field(default_factory=Rewards)
    enable_comments: bool = True
    enable_leaderboard: bool = True
    enable_notifications: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, v: datetime):
        return _as_utc(v)

    @field_validator("allowed_activity_types")
    @classmethod
    def non_empty(cls, v: list[str]):
        if not v:
            raise ValueError("allowed_activity_types must not be empty")
        return list(dict.fromkeys(v))

class ChallengeUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=2, max_length=100)
    description: str | None = Field(default=None, min_length=2, max_length=500)
    end_date: datetime | None = None
    max_participants: int | None = Field(default=None, ge=1)
    rewards: Rewards | None = None

    @field_validator("end_date")
    @classmethod
    def assume_utc(cls, v: datetime | None):
        return _as_utc(v)

class StatusChange(BaseModel):
    # completion is driven by goals and the clock, never by hand
    status: Literal["active", "cancelled"]

class JoinRequest(BaseModel):
    join_code: str | None = None

class InviteCreate(BaseModel):
    user_id: UUID

class InvitePublic(BaseModel):
    challenge_id: UUID
    user_id: UUID
    invited_by: UUID
    created_at: datetime

class ProgressTotals(BaseModel):
    distance: float = 0
    activities: int = 0
    elevation: float = 0
    time: float = 0
    calories: float = 0

class AchievementPublic(BaseModel):
    type: str
    value: Any = None
    earned_at: datetime

class ParticipantPublic(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: UUID
    position: int
    joined_at: datetime
    is_active: bool
    progress: ProgressTotals
    rank: int
    completed_at: datetime | None = None
    achievements: List[AchievementPublic] = Field(default_factory=list)

class ChallengePublic(BaseModel):
    id: UUID
    creator_id: UUID
    title: str
    description: str
    type: ChallengeType
    goal: Goal
    start_date: datetime
    end_date: datetime
    duration_days: int
    visibility: Visibility
    join_code: str | None = None  # only shown to the creator
    requires_approval: bool
    max_participants: int
    status: ChallengeStatus
    allowed_activity_types: List[ActivityType]
    rewards: Rewards
    total_progress: ProgressTotals
    enable_leaderboard: bool
    winner_user_id: UUID | None = None
    goal_reached_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    # Derived for the viewer:
    is_active: bool
    participant_count: int
    is_joined: bool
    is_creator: bool
    days_remaining: int
    progress_percentage: float

class MyProgress(BaseModel):
    value: float  # in goal units
    percentage: float

class MyChallengePublic(ChallengePublic):
    my_progress: MyProgress

class LeaderboardRow(BaseModel):
    user_id: UUID
    progress: float
    rank: int
    progress_percentage: float
    joined_at: datetime
    achievements: List[AchievementPublic] = Field(default_factory=list)

class GrowthPointPublic(BaseModel):
    recorded_at: datetime
    count: int

class ChallengeStats(BaseModel):
    total_participants: int
    metric: str
    metric_total: float
    average_progress: float
    progress_percentage: float
    total_progress: ProgressTotals
    total_activities: int
    avg_activity_distance: float
    avg_activity_duration: float
    days_remaining: int
    days_since_start: int
    total_duration: int
    top_performers: List[LeaderboardRow]
    growth: List[GrowthPointPublic]
    goal: Goal
