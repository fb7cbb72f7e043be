from __future__ import annotations
from dataclasses import asdict
from datetime import datetime
from runmate.models.challenge import Challenge
from runmate.services.leaderboard import compute_leaderboard
from runmate.services.lifecycle import days_remaining, days_since_start
from runmate.services.metrics import METRICS, metric_for_unit, in_goal_units, percentage
from runmate.services.progress import recompute_totals

TOP_PERFORMERS = 3


def challenge_stats(ch: Challenge, now: datetime) -> dict:
    metric = metric_for_unit(ch.goal_unit).metric
    active = ch.active_participants()
    roster_sums = recompute_totals(ch)
    totals = {m: ch.total(m) for m in METRICS} if ch.goal_is_collective else roster_sums

    metric_total = in_goal_units(totals[metric], ch.goal_unit)
    average = metric_total / len(active) if active else 0.0
    activities = roster_sums["activities"]

    return {
        "total_participants": len(active),
        "metric": metric,
        "metric_total": metric_total,
        "average_progress": average,
        "progress_percentage": percentage(metric_total if ch.goal_is_collective else average, ch.goal_target),
        "total_progress": totals,
        "total_activities": ch.analytics_total_activities if ch.goal_is_collective else int(activities),
        # rolling averages per counted activity
        "avg_activity_distance": roster_sums["distance"] / activities if activities else 0.0,
        "avg_activity_duration": roster_sums["time"] / activities if activities else 0.0,
        "days_remaining": days_remaining(ch, now),
        "days_since_start": days_since_start(ch, now),
        "total_duration": ch.duration_days,
        "top_performers": [asdict(e) for e in compute_leaderboard(ch)[:TOP_PERFORMERS]],
        "growth": [{"recorded_at": g.recorded_at, "count": g.count} for g in ch.growth_points],
        "goal": {
            "target": ch.goal_target,
            "unit": ch.goal_unit,
            "is_collective": ch.goal_is_collective,
            "win_condition": ch.goal_win_condition,
        },
    }
