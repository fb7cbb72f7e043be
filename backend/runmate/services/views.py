from __future__ import annotations
import uuid
from datetime import datetime
from runmate.models.challenge import Challenge, ChallengeInvite, Participant, ParticipantAchievement
from runmate.schemas.activity import ProgressUpdatePublic
from runmate.schemas.challenge import (
    AchievementPublic, ChallengePublic, Goal, InvitePublic, LeaderboardRow, MyChallengePublic, MyProgress, ParticipantPublic,
    ProgressTotals, Rewards,
)
from runmate.services.leaderboard import LeaderboardEntry
from runmate.services.lifecycle import days_remaining, is_active, progress_percentage
from runmate.services.metrics import METRICS, in_goal_units, metric_for_unit, percentage
from runmate.services.milestones import Evaluation, parse_milestones, winner_reward


def participant_progress(p: Participant) -> ProgressTotals:
    return ProgressTotals(**{m: p.progress(m) for m in METRICS})


def to_achievement_public(a: ParticipantAchievement) -> AchievementPublic:
    return AchievementPublic(type=a.type, value=a.value, earned_at=a.earned_at)


def to_participant_public(p: Participant) -> ParticipantPublic:
    return ParticipantPublic(
        id=p.id,
        challenge_id=p.challenge_id,
        user_id=p.user_id,
        position=p.position,
        joined_at=p.joined_at,
        is_active=p.is_active,
        progress=participant_progress(p),
        rank=p.rank,
        completed_at=p.completed_at,
        achievements=[to_achievement_public(a) for a in p.achievements],
    )


def to_challenge_public(ch: Challenge, viewer_id: uuid.UUID, now: datetime) -> ChallengePublic:
    me = ch.find_participant(viewer_id)
    return ChallengePublic(
        id=ch.id,
        creator_id=ch.creator_id,
        title=ch.title,
        description=ch.description,
        type=ch.type,
        goal=Goal(
            target=ch.goal_target, unit=ch.goal_unit,
            is_collective=ch.goal_is_collective, win_condition=ch.goal_win_condition,
        ),
        start_date=ch.start_date,
        end_date=ch.end_date,
        duration_days=ch.duration_days,
        visibility=ch.visibility,
        join_code=ch.join_code if ch.creator_id == viewer_id else None,
        requires_approval=ch.requires_approval,
        max_participants=ch.max_participants,
        status=ch.status,
        allowed_activity_types=ch.allowed_activity_types,
        # malformed stored milestones are dropped here as in the evaluator
        rewards=Rewards(winner=winner_reward(ch), milestones=parse_milestones(ch)),
        total_progress=ProgressTotals(**{m: ch.total(m) for m in METRICS}),
        enable_leaderboard=ch.enable_leaderboard,
        winner_user_id=ch.winner_user_id,
        goal_reached_at=ch.goal_reached_at,
        completed_at=ch.completed_at,
        created_at=ch.created_at,
        is_active=is_active(ch, now),
        participant_count=len(ch.active_participants()),
        is_joined=bool(me and me.is_active),
        is_creator=ch.creator_id == viewer_id,
        days_remaining=days_remaining(ch, now),
        progress_percentage=progress_percentage(ch, viewer_id),
    )


def to_my_challenge_public(ch: Challenge, viewer_id: uuid.UUID, now: datetime) -> MyChallengePublic:
    """The viewer's own progress, even on collective goals."""
    me = ch.find_participant(viewer_id)
    value = in_goal_units(me.progress(metric_for_unit(ch.goal_unit).metric), ch.goal_unit) if me else 0.0
    return MyChallengePublic(
        **to_challenge_public(ch, viewer_id, now).model_dump(),
        my_progress=MyProgress(value=value, percentage=percentage(value, ch.goal_target)),
    )


def to_leaderboard_row(e: LeaderboardEntry) -> LeaderboardRow:
    return LeaderboardRow(
        user_id=e.user_id, progress=e.progress, rank=e.rank,
        progress_percentage=e.progress_percentage, joined_at=e.joined_at,
        achievements=[AchievementPublic(type=a.type, value=a.value, earned_at=a.earned_at) for a in e.achievements],
    )


def to_invite_public(inv: ChallengeInvite) -> InvitePublic:
    return InvitePublic(challenge_id=inv.challenge_id, user_id=inv.user_id, invited_by=inv.invited_by, created_at=inv.created_at)


def to_progress_update(ch: Challenge, p: Participant, evaluation: Evaluation) -> ProgressUpdatePublic:
    return ProgressUpdatePublic(
        challenge_id=ch.id,
        user_id=p.user_id,
        progress=participant_progress(p),
        rank=p.rank,
        new_achievements=[to_achievement_public(a) for a in evaluation.new_achievements],
        goal_reached=ch.goal_reached_at is not None,
        completed=ch.status == "completed",
        winner_user_id=ch.winner_user_id,
    )
