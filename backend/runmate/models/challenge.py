from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, Float, Boolean, Text, ForeignKey, UniqueConstraint, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from runmate.db import Base, UTCDateTime

JSONType = JSON().with_variant(JSONB(), "postgresql")

class Challenge(Base):
    __tablename__ = "challenges"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    creator_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # distance|time|activities|elevation|custom

    goal_target: Mapped[float] = mapped_column(Float, nullable=False)
    goal_unit: Mapped[str] = mapped_column(String(16), nullable=False)  # km|hours|activities|meters|seconds
    goal_is_collective: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    goal_win_condition: Mapped[str] = mapped_column(String(24), nullable=False, default="first_to_complete")

    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)

    visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="public")  # public|private|friends_only
    join_code: Mapped[str | None] = mapped_column(String(12), unique=True, index=True, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=50)

    # Collective totals, only maintained when goal_is_collective
    total_distance: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_activities: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_elevation: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_time: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_calories: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="upcoming")  # upcoming|active|completed|cancelled
    rewards_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    allowed_activity_types: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    enable_comments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enable_leaderboard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enable_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    analytics_total_activities: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    winner_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    goal_reached_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    participants: Mapped[list[Participant]] = relationship(
        back_populates="challenge", lazy="selectin", order_by="Participant.position",
        cascade="all, delete-orphan",
    )
    growth_points: Mapped[list[ChallengeGrowthPoint]] = relationship(
        lazy="selectin", order_by="ChallengeGrowthPoint.recorded_at", cascade="all, delete-orphan",
    )
    invites: Mapped[list[ChallengeInvite]] = relationship(lazy="selectin", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    def total(self, metric: str) -> float:
        return getattr(self, f"total_{metric}")

    def active_participants(self) -> list[Participant]:
        return [p for p in self.participants if p.is_active]

    def find_participant(self, user_id: uuid.UUID) -> Participant | None:
        return next((p for p in self.participants if p.user_id == user_id), None)

    def is_invited(self, user_id: uuid.UUID) -> bool:
        return any(i.user_id == user_id for i in self.invites)

class Participant(Base):
    __tablename__ = "participants"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based join order, tie-break for ranking
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    left_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    progress_distance: Mapped[float] = mapped_column(Float, nullable=False, default=0)  # km
    progress_activities: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_elevation: Mapped[float] = mapped_column(Float, nullable=False, default=0)  # meters
    progress_time: Mapped[float] = mapped_column(Float, nullable=False, default=0)  # seconds
    progress_calories: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # cache only
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    challenge: Mapped[Challenge] = relationship(back_populates="participants")
    achievements: Mapped[list[ParticipantAchievement]] = relationship(
        lazy="selectin", order_by="ParticipantAchievement.earned_at", cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_participant_unique"),
    )

    def progress(self, metric: str) -> float:
        return getattr(self, f"progress_{metric}") or 0

    def has_achievement(self, type_: str, value: Any = None) -> bool:
        return any(a.type == type_ and (value is None or a.value == value) for a in self.achievements)

class ParticipantAchievement(Base):
    """Append-only. type: milestone | winner | goal_completed | collective_goal"""
    __tablename__ = "participant_achievements"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("participants.id", ondelete="CASCADE"), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(24), nullable=False)
    value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)

class ChallengeGrowthPoint(Base):
    __tablename__ = "challenge_growth_points"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False)

class ChallengeInvite(Base):
    __tablename__ = "challenge_invites"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("challenges.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True, nullable=False)
    invited_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_invite_once_per_user"),
    )
