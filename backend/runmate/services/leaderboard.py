from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable
from runmate.models.challenge import Challenge
from runmate.services.metrics import metric_for_unit, in_goal_units, percentage


@dataclass(frozen=True)
class EarnedAchievement:
    type: str
    value: Any
    earned_at: datetime


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: uuid.UUID
    progress: float  # in goal units
    rank: int
    progress_percentage: float
    joined_at: datetime
    achievements: tuple[EarnedAchievement, ...] = ()


def compute_leaderboard(ch: Challenge) -> list[LeaderboardEntry]:
    """
    Rank active participants by the goal metric, highest first.
    Equal values keep roster order, so the earlier joiner ranks higher.
    Pure: stored `rank` fields are not touched.
    """
    metric = metric_for_unit(ch.goal_unit).metric
    rows = [
        (in_goal_units(p.progress(metric), ch.goal_unit), p.position, p)
        for p in ch.active_participants()
    ]
    rows.sort(key=lambda r: (-r[0], r[1]))
    return [
        LeaderboardEntry(
            user_id=p.user_id,
            progress=value,
            rank=i,
            progress_percentage=percentage(value, ch.goal_target),
            joined_at=p.joined_at,
            achievements=tuple(EarnedAchievement(a.type, a.value, a.earned_at) for a in p.achievements),
        )
        for i, (value, _, p) in enumerate(rows, start=1)
    ]


def apply_ranks(ch: Challenge, entries: Iterable[LeaderboardEntry]) -> None:
    """Persist a snapshot into the participants' rank cache (0 = unranked)."""
    ranks = {e.user_id: e.rank for e in entries}
    for p in ch.participants:
        p.rank = ranks.get(p.user_id, 0)
