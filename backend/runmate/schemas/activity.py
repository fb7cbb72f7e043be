from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime
from typing import List
from runmate.schemas.challenge import ActivityType, AchievementPublic, ProgressTotals, _as_utc


class ActivityContribution(BaseModel):
    """One completed workout's contribution. Missing metric fields count as 0."""
    distance: float | None = Field(default=None, description="km")
    elevation: float | None = Field(default=None, description="meters")
    duration_seconds: float | None = None
    calories: float | None = None
    sport_type: ActivityType = Field(description="checked against allowed_activity_types")


class ActivityCompleted(BaseModel):
    """Event published by the activity log when a workout is saved."""
    sport_type: ActivityType
    distance_km: float = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0, ge=0)
    elevation_m: float = Field(default=0, ge=0)
    calories: float = Field(default=0, ge=0)
    occurred_at: datetime | None = None

    @field_validator("occurred_at")
    @classmethod
    def assume_utc(cls, v: datetime | None):
        return _as_utc(v)

    def contribution(self) -> ActivityContribution:
        return ActivityContribution(
            distance=self.distance_km,
            elevation=self.elevation_m,
            duration_seconds=self.duration_seconds,
            calories=self.calories,
            sport_type=self.sport_type,
        )


class ProgressUpdatePublic(BaseModel):
    challenge_id: UUID
    user_id: UUID
    progress: ProgressTotals
    rank: int
    new_achievements: List[AchievementPublic] = Field(default_factory=list)
    goal_reached: bool = False
    completed: bool = False
    winner_user_id: UUID | None = None
