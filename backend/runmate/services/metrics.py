from __future__ import annotations
from typing import NamedTuple

# Progress counters kept per participant (and per challenge when collective)
METRICS = ("distance", "activities", "elevation", "time", "calories")


class UnitMetric(NamedTuple):
    metric: str
    scale: float  # stored value * scale = value in goal units


# Explicit lookup: a goal unit missing here is a KeyError, never a silent mismatch.
UNIT_METRICS: dict[str, UnitMetric] = {
    "km": UnitMetric("distance", 1.0),
    "meters": UnitMetric("elevation", 1.0),
    "hours": UnitMetric("time", 1 / 3600),
    "seconds": UnitMetric("time", 1.0),
    "activities": UnitMetric("activities", 1.0),
}


def metric_for_unit(unit: str) -> UnitMetric:
    return UNIT_METRICS[unit]


def in_goal_units(stored: float, unit: str) -> float:
    return (stored or 0) * UNIT_METRICS[unit].scale


def percentage(value: float, target: float) -> float:
    if target <= 0:
        return 0.0
    return min(value / target * 100, 100.0)
