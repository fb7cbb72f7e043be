from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
import structlog
from pydantic import ValidationError
from runmate.models.challenge import Challenge, Participant, ParticipantAchievement
from runmate.schemas.challenge import MilestoneReward, WinnerReward
from runmate.services.leaderboard import apply_ranks, compute_leaderboard
from runmate.services.lifecycle import transition
from runmate.services.metrics import metric_for_unit, in_goal_units
from runmate.services.progress import recompute_totals

log = structlog.get_logger()


@dataclass
class Evaluation:
    new_achievements: list[ParticipantAchievement] = field(default_factory=list)
    goal_reached: bool = False
    completed: bool = False
    winner_user_id: uuid.UUID | None = None


def milestone_threshold(milestone: MilestoneReward, target: float) -> float:
    if milestone.kind == "percent":
        return milestone.at / 100 * target
    return milestone.at


def parse_milestones(ch: Challenge) -> list[MilestoneReward]:
    """Valid milestone definitions in stored order; malformed entries are logged and skipped."""
    rewards = ch.rewards_json
    if not isinstance(rewards, dict):
        log.warning("milestone_skipped", challenge_id=str(ch.id), reason="rewards is not an object")
        return []
    raw = rewards.get("milestones") or []
    if not isinstance(raw, list):
        log.warning("milestone_skipped", challenge_id=str(ch.id), reason="milestones is not a list")
        return []
    parsed = []
    for index, item in enumerate(raw):
        try:
            parsed.append(MilestoneReward.model_validate(item))
        except ValidationError as e:
            log.warning("milestone_skipped", challenge_id=str(ch.id), index=index, error=str(e))
    return parsed


def winner_reward(ch: Challenge) -> dict[str, Any]:
    raw = ch.rewards_json.get("winner") if isinstance(ch.rewards_json, dict) else None
    try:
        return WinnerReward.model_validate(raw or {}).model_dump(mode="json")
    except ValidationError as e:
        log.warning("winner_reward_invalid", challenge_id=str(ch.id), error=str(e))
        return WinnerReward().model_dump(mode="json")


def award(participant: Participant, type_: str, value: Any, now: datetime) -> ParticipantAchievement:
    achievement = ParticipantAchievement(
        id=uuid.uuid4(), participant_id=participant.id, type=type_, value=value, earned_at=now,
    )
    participant.achievements.append(achievement)
    return achievement


def _crown(ch: Challenge, participant: Participant, now: datetime, result: Evaluation) -> None:
    ch.winner_user_id = participant.user_id
    result.winner_user_id = participant.user_id
    result.new_achievements.append(award(participant, "winner", winner_reward(ch), now))


def evaluate(ch: Challenge, participant: Participant, now: datetime) -> Evaluation:
    """
    Inspect a participant right after a progress update.

    - milestones: every threshold the participant's metric has reached fires
      once per participant, several may fire in one update
    - individual target: `goal_completed` once; under first_to_complete the
      first participant to get there wins and the challenge completes
    - collective_goal (or any collective challenge): once the summed metric
      reaches the target every active participant is credited once
    """
    result = Evaluation()
    unit = ch.goal_unit
    metric = metric_for_unit(unit).metric
    value = in_goal_units(participant.progress(metric), unit)

    milestones = sorted(parse_milestones(ch), key=lambda m: milestone_threshold(m, ch.goal_target))
    for milestone in milestones:
        if value >= milestone_threshold(milestone, ch.goal_target) and not participant.has_achievement("milestone", milestone.at):
            result.new_achievements.append(award(participant, "milestone", milestone.at, now))

    if ch.goal_win_condition == "collective_goal" or ch.goal_is_collective:
        stored = ch.total(metric) if ch.goal_is_collective else recompute_totals(ch)[metric]
        if ch.goal_reached_at is None and in_goal_units(stored, unit) >= ch.goal_target:
            ch.goal_reached_at = now
            result.goal_reached = True
            for p in ch.active_participants():
                if not p.has_achievement("collective_goal"):
                    earned = award(p, "collective_goal", ch.goal_target, now)
                    if p is participant:
                        result.new_achievements.append(earned)
        if ch.goal_win_condition == "collective_goal":
            return result

    if participant.completed_at is None and value >= ch.goal_target:
        participant.completed_at = now
        result.new_achievements.append(award(participant, "goal_completed", ch.goal_target, now))
        if ch.goal_win_condition == "first_to_complete" and ch.winner_user_id is None and ch.status == "active":
            _crown(ch, participant, now, result)
            transition(ch, "completed", now)
            result.completed = True
    return result


def resolve_end_of_window(ch: Challenge, now: datetime) -> Evaluation:
    """Close an active challenge whose end date has passed; highest_individual picks its winner here."""
    result = Evaluation()
    if ch.status != "active" or now <= ch.end_date:
        return result
    board = compute_leaderboard(ch)
    apply_ranks(ch, board)
    if ch.goal_win_condition == "highest_individual" and ch.winner_user_id is None and board and board[0].progress > 0:
        top = ch.find_participant(board[0].user_id)
        _crown(ch, top, now, result)
    transition(ch, "completed", now)
    result.completed = True
    return result


def advance_by_clock(ch: Challenge, now: datetime) -> bool:
    """Move upcoming -> active -> completed as the wall clock dictates. Returns True on change."""
    changed = False
    if ch.status == "upcoming" and ch.start_date <= now:
        transition(ch, "active", now)
        changed = True
    if ch.status == "active" and now > ch.end_date:
        resolve_end_of_window(ch, now)
        changed = True
    return changed
