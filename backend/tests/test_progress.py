from __future__ import annotations
import uuid
import pytest
from runmate.errors import InvalidContribution, NotAParticipant
from runmate.schemas.activity import ActivityContribution
from runmate.services import membership
from runmate.services.progress import apply_activity, recompute_totals, sync_totals


def test_individual_progress_accumulates_without_touching_totals(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    membership.join(ch, a, now)

    apply_activity(ch, a, ActivityContribution(sport_type="running", distance=5.5, duration_seconds=1800, elevation=40, calories=300), now)
    p = apply_activity(ch, a, ActivityContribution(sport_type="running", distance=4.5), now)

    assert p.progress_distance == pytest.approx(10.0)
    assert p.progress_activities == 2
    assert p.progress_time == 1800
    assert p.progress_elevation == 40
    assert p.progress_calories == 300
    assert ch.total_distance == 0
    assert ch.analytics_total_activities == 0


def test_collective_totals_follow_contributions(make_challenge, now):
    ch = make_challenge(goal={"target": 100, "unit": "km", "is_collective": True, "win_condition": "collective_goal"})
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.join(ch, b, now)

    apply_activity(ch, a, ActivityContribution(sport_type="running", distance=12), now)
    apply_activity(ch, b, ActivityContribution(sport_type="running", distance=8, calories=100), now)

    assert ch.total_distance == pytest.approx(20)
    assert ch.total_activities == 2
    assert ch.total_calories == 100
    assert ch.analytics_total_activities == 2
    assert recompute_totals(ch)["distance"] == pytest.approx(ch.total_distance)


def test_missing_fields_count_as_zero(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    membership.join(ch, a, now)
    p = apply_activity(ch, a, ActivityContribution(sport_type="running"), now)
    assert p.progress_distance == 0
    assert p.progress_activities == 1


def test_negative_contribution_rejected_before_any_write(make_challenge, now):
    ch = make_challenge(goal={"target": 100, "unit": "km", "is_collective": True})
    a = uuid.uuid4()
    membership.join(ch, a, now)

    with pytest.raises(InvalidContribution):
        apply_activity(ch, a, ActivityContribution(sport_type="running", distance=-3, calories=50), now)

    p = ch.find_participant(a)
    assert p.progress_activities == 0
    assert p.progress_calories == 0
    assert ch.total_activities == 0


def test_non_participant_cannot_contribute(make_challenge, now):
    ch = make_challenge()
    with pytest.raises(NotAParticipant):
        apply_activity(ch, uuid.uuid4(), ActivityContribution(sport_type="running", distance=1), now)


def test_left_participant_cannot_contribute(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    membership.join(ch, a, now)
    membership.leave(ch, a, now)
    with pytest.raises(NotAParticipant):
        apply_activity(ch, a, ActivityContribution(sport_type="running", distance=1), now)


def test_totals_resync_on_leave_and_rejoin(make_challenge, now):
    ch = make_challenge(goal={"target": 100, "unit": "km", "is_collective": True})
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.join(ch, b, now)
    apply_activity(ch, a, ActivityContribution(sport_type="running", distance=30), now)
    apply_activity(ch, b, ActivityContribution(sport_type="running", distance=20), now)

    membership.leave(ch, b, now)
    assert ch.total_distance == pytest.approx(30)
    assert ch.total_activities == 1

    membership.join(ch, b, now)
    assert ch.total_distance == pytest.approx(50)
    assert sync_totals(ch) is False


def test_sync_totals_ignores_individual_challenges(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    membership.join(ch, a, now)
    apply_activity(ch, a, ActivityContribution(sport_type="running", distance=7), now)
    assert sync_totals(ch) is False
    assert ch.total_distance == 0
