from __future__ import annotations
import uuid
from datetime import timedelta
from runmate.schemas.activity import ActivityContribution
from runmate.services import membership
from runmate.services.leaderboard import apply_ranks, compute_leaderboard
from runmate.services.milestones import evaluate
from runmate.services.progress import apply_activity


def _run(ch, user_id, now, **fields):
    apply_activity(ch, user_id, ActivityContribution(sport_type="running", **fields), now)


def test_orders_by_goal_metric_descending(make_challenge, now):
    ch = make_challenge()
    a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    for u in (a, b, c):
        membership.join(ch, u, now)
    _run(ch, a, now, distance=10)
    _run(ch, b, now, distance=30)
    _run(ch, c, now, distance=20)

    board = compute_leaderboard(ch)
    assert [e.user_id for e in board] == [b, c, a]
    assert [e.rank for e in board] == [1, 2, 3]
    assert board[0].progress == 30


def test_ties_go_to_the_earlier_joiner(make_challenge, now):
    ch = make_challenge()
    first, second = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, first, now)
    membership.join(ch, second, now + timedelta(minutes=5))
    _run(ch, second, now, distance=15)
    _run(ch, first, now, distance=15)

    board = compute_leaderboard(ch)
    assert [e.user_id for e in board] == [first, second]
    assert [e.rank for e in board] == [1, 2]


def test_rejoined_participant_keeps_original_position(make_challenge, now):
    ch = make_challenge()
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.join(ch, b, now)
    membership.leave(ch, a, now)
    membership.join(ch, a, now)

    board = compute_leaderboard(ch)
    assert [e.user_id for e in board] == [a, b]


def test_inactive_participants_are_excluded(make_challenge, now):
    ch = make_challenge()
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.join(ch, b, now)
    _run(ch, a, now, distance=50)
    membership.leave(ch, a, now)

    board = compute_leaderboard(ch)
    assert [e.user_id for e in board] == [b]
    assert board[0].rank == 1


def test_compute_is_pure_and_apply_ranks_caches(make_challenge, now):
    ch = make_challenge()
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.join(ch, b, now)
    _run(ch, b, now, distance=3)

    board = compute_leaderboard(ch)
    assert all(p.rank == 0 for p in ch.participants)

    apply_ranks(ch, board)
    assert ch.find_participant(b).rank == 1
    assert ch.find_participant(a).rank == 2

    membership.leave(ch, a, now)
    apply_ranks(ch, compute_leaderboard(ch))
    assert ch.find_participant(a).rank == 0


def test_progress_reported_in_goal_units(make_challenge, now):
    ch = make_challenge(type="time", goal={"target": 10, "unit": "hours"})
    a = uuid.uuid4()
    membership.join(ch, a, now)
    _run(ch, a, now, duration_seconds=2 * 3600)

    (entry,) = compute_leaderboard(ch)
    assert entry.progress == 2
    assert entry.progress_percentage == 20


def test_percentage_is_capped(make_challenge, now):
    ch = make_challenge(goal={"target": 5, "unit": "km"})
    a = uuid.uuid4()
    membership.join(ch, a, now)
    _run(ch, a, now, distance=12)
    assert compute_leaderboard(ch)[0].progress_percentage == 100


def test_empty_roster(make_challenge):
    assert compute_leaderboard(make_challenge()) == []


def test_entries_carry_earned_achievements(make_challenge, now):
    ch = make_challenge(rewards={"milestones": [{"at": 5}]})
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.join(ch, b, now)
    p = apply_activity(ch, a, ActivityContribution(sport_type="running", distance=7), now)
    evaluate(ch, p, now)

    leader, other = compute_leaderboard(ch)
    assert [(x.type, x.value) for x in leader.achievements] == [("milestone", 5)]
    assert other.achievements == ()
