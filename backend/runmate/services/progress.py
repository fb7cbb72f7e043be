from __future__ import annotations
import math
import uuid
from datetime import datetime
from runmate.errors import InvalidContribution, NotAParticipant
from runmate.models.challenge import Challenge, Participant
from runmate.schemas.activity import ActivityContribution
from runmate.services.metrics import METRICS


def contribution_deltas(contribution: ActivityContribution) -> dict[str, float]:
    """Per-metric increments for one activity; missing fields count as 0."""
    deltas = {
        "distance": contribution.distance or 0,
        "activities": 1,
        "elevation": contribution.elevation or 0,
        "time": contribution.duration_seconds or 0,
        "calories": contribution.calories or 0,
    }
    negative = [m for m, v in deltas.items() if v < 0 or not math.isfinite(v)]
    if negative:
        raise InvalidContribution(f"Invalid contribution for: {', '.join(negative)}")
    return deltas


def active_participant(ch: Challenge, user_id: uuid.UUID) -> Participant:
    p = ch.find_participant(user_id)
    if p is None or not p.is_active:
        raise NotAParticipant()
    return p


def apply_activity(ch: Challenge, user_id: uuid.UUID, contribution: ActivityContribution, now: datetime) -> Participant:
    """
    Add one activity to the participant's counters and, for collective goals,
    to the challenge totals. Every check runs before the first write.
    """
    participant = active_participant(ch, user_id)
    deltas = contribution_deltas(contribution)

    for metric, delta in deltas.items():
        setattr(participant, f"progress_{metric}", participant.progress(metric) + delta)

    if ch.goal_is_collective:
        for metric, delta in deltas.items():
            setattr(ch, f"total_{metric}", (ch.total(metric) or 0) + delta)
        ch.analytics_total_activities = (ch.analytics_total_activities or 0) + 1

    ch.updated_at = now
    return participant


def recompute_totals(ch: Challenge) -> dict[str, float]:
    totals: dict[str, float] = dict.fromkeys(METRICS, 0)
    for p in ch.active_participants():
        for metric in METRICS:
            totals[metric] += p.progress(metric)
    return totals


def sync_totals(ch: Challenge) -> bool:
    """
    Rewrite the collective totals from the active roster.
    Called after every roster mutation; returns True if a total changed.
    """
    if not ch.goal_is_collective:
        return False
    changed = False
    for metric, value in recompute_totals(ch).items():
        if not math.isclose(ch.total(metric) or 0, value, abs_tol=1e-9):
            setattr(ch, f"total_{metric}", value)
            changed = True
    return changed
