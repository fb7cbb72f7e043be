from __future__ import annotations
import math
import uuid
from datetime import datetime, timedelta
from runmate.errors import ChallengeClosed, InvalidChallengeUpdate, InvalidGoal, InvalidStatusTransition, InvalidTimeWindow
from runmate.models.challenge import Challenge
from runmate.schemas.challenge import ChallengeCreate, ChallengeUpdate
from runmate.services.metrics import metric_for_unit, in_goal_units, percentage

# status -> statuses it may move to; completed and cancelled are terminal
TRANSITIONS: dict[str, frozenset[str]] = {
    "upcoming": frozenset({"active", "cancelled"}),
    "active": frozenset({"completed", "cancelled"}),
}

# a start date may lag the request by this much (clock skew, slow forms)
START_GRACE = timedelta(hours=24)

DAY_SECONDS = 86400


def duration_days(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / DAY_SECONDS)


def days_remaining(ch: Challenge, now: datetime) -> int:
    return max(0, math.ceil((ch.end_date - now).total_seconds() / DAY_SECONDS))


def days_since_start(ch: Challenge, now: datetime) -> int:
    return max(0, math.ceil((now - ch.start_date).total_seconds() / DAY_SECONDS))


def is_active(ch: Challenge, now: datetime) -> bool:
    return ch.status == "active" and ch.start_date <= now <= ch.end_date


def initial_status(start: datetime, end: datetime, now: datetime) -> str:
    return "active" if start <= now <= end else "upcoming"


def needs_sweep(ch: Challenge, now: datetime) -> bool:
    """True when the stored status lags the wall clock."""
    return (ch.status == "upcoming" and ch.start_date <= now) or (ch.status == "active" and now > ch.end_date)


def validate_definition(definition: ChallengeCreate, now: datetime) -> None:
    target = definition.goal.target
    if not math.isfinite(target) or target <= 0:
        raise InvalidGoal("goal.target must be greater than 0")
    if definition.end_date <= definition.start_date:
        raise InvalidTimeWindow("end_date must be after start_date")
    if definition.start_date < now - START_GRACE:
        raise InvalidTimeWindow("start_date cannot be more than 24 hours in the past")
    if definition.end_date <= now:
        raise InvalidTimeWindow("end_date must be in the future")
    thresholds = [m.at for m in definition.rewards.milestones]
    if len(thresholds) != len(set(thresholds)):
        raise InvalidGoal("milestone thresholds must be unique")


def build_challenge(definition: ChallengeCreate, creator_id: uuid.UUID, now: datetime, join_code: str | None = None) -> Challenge:
    goal = definition.goal
    return Challenge(
        id=uuid.uuid4(),
        creator_id=creator_id,
        title=definition.title,
        description=definition.description,
        type=definition.type,
        goal_target=goal.target,
        goal_unit=goal.unit,
        goal_is_collective=goal.is_collective,
        goal_win_condition=goal.win_condition,
        start_date=definition.start_date,
        end_date=definition.end_date,
        duration_days=duration_days(definition.start_date, definition.end_date),
        visibility=definition.visibility,
        join_code=join_code,
        requires_approval=definition.requires_approval,
        max_participants=definition.max_participants,
        total_distance=0,
        total_activities=0,
        total_elevation=0,
        total_time=0,
        total_calories=0,
        status=initial_status(definition.start_date, definition.end_date, now),
        rewards_json=definition.rewards.model_dump(mode="json"),
        allowed_activity_types=list(definition.allowed_activity_types),
        enable_comments=definition.enable_comments,
        enable_leaderboard=definition.enable_leaderboard,
        enable_notifications=definition.enable_notifications,
        analytics_total_activities=0,
        created_at=now,
        updated_at=now,
        participants=[],
        growth_points=[],
        invites=[],
    )


def transition(ch: Challenge, target: str, now: datetime) -> None:
    if target not in TRANSITIONS.get(ch.status, frozenset()):
        raise InvalidStatusTransition(f"Cannot move challenge from {ch.status} to {target}")
    ch.status = target
    if target == "completed":
        ch.completed_at = now
    elif target == "cancelled":
        ch.cancelled_at = now
    ch.updated_at = now


def apply_update(ch: Challenge, changes: ChallengeUpdate, now: datetime) -> None:
    if ch.status in ("completed", "cancelled"):
        raise ChallengeClosed("Completed or cancelled challenges cannot be edited")
    if changes.end_date is not None and changes.end_date <= ch.start_date:
        raise InvalidTimeWindow("end_date must be after start_date")
    if changes.end_date is not None and changes.end_date <= now:
        raise InvalidTimeWindow("end_date must be in the future")
    if changes.max_participants is not None and changes.max_participants < len(ch.active_participants()):
        raise InvalidChallengeUpdate("max_participants cannot be below the current participant count")
    if changes.rewards is not None:
        thresholds = [m.at for m in changes.rewards.milestones]
        if len(thresholds) != len(set(thresholds)):
            raise InvalidGoal("milestone thresholds must be unique")

    if changes.title is not None:
        ch.title = changes.title
    if changes.description is not None:
        ch.description = changes.description
    if changes.end_date is not None:
        ch.end_date = changes.end_date
        ch.duration_days = duration_days(ch.start_date, ch.end_date)
    if changes.max_participants is not None:
        ch.max_participants = changes.max_participants
    if changes.rewards is not None:
        ch.rewards_json = changes.rewards.model_dump(mode="json")
    ch.updated_at = now


def progress_percentage(ch: Challenge, user_id: uuid.UUID | None = None) -> float:
    """Collective: share of the target reached by the group. Individual: the viewer's own share."""
    metric = metric_for_unit(ch.goal_unit).metric
    if ch.goal_is_collective:
        return percentage(in_goal_units(ch.total(metric), ch.goal_unit), ch.goal_target)
    p = ch.find_participant(user_id) if user_id is not None else None
    if p is None or not p.is_active:
        return 0.0
    return percentage(in_goal_units(p.progress(metric), ch.goal_unit), ch.goal_target)
