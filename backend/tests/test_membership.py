from __future__ import annotations
import uuid
from datetime import timedelta
import pytest
from runmate.errors import AccessDenied, AlreadyJoined, ChallengeClosed, ChallengeFull, NotAParticipant
from runmate.schemas.activity import ActivityContribution
from runmate.services import membership
from runmate.services.lifecycle import transition
from runmate.services.progress import apply_activity


def test_join_assigns_positions_and_records_growth(make_challenge, now):
    ch = make_challenge()
    a, b = uuid.uuid4(), uuid.uuid4()
    pa = membership.join(ch, a, now)
    pb = membership.join(ch, b, now + timedelta(hours=1))

    assert (pa.position, pb.position) == (1, 2)
    assert pa.is_active and pb.is_active
    assert [g.count for g in ch.growth_points] == [1, 2]


def test_capacity_admits_exactly_max_participants(make_challenge, now):
    ch = make_challenge(max_participants=2)
    membership.join(ch, uuid.uuid4(), now)
    membership.join(ch, uuid.uuid4(), now)
    with pytest.raises(ChallengeFull):
        membership.join(ch, uuid.uuid4(), now)
    assert len(ch.active_participants()) == 2


def test_leaving_frees_a_seat(make_challenge, now):
    ch = make_challenge(max_participants=1)
    a, b = uuid.uuid4(), uuid.uuid4()
    membership.join(ch, a, now)
    membership.leave(ch, a, now)
    membership.join(ch, b, now)
    assert [p.user_id for p in ch.active_participants()] == [b]


def test_double_join_is_rejected(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    membership.join(ch, a, now)
    with pytest.raises(AlreadyJoined):
        membership.join(ch, a, now)


def test_already_joined_wins_over_full(make_challenge, now):
    ch = make_challenge(max_participants=1)
    a = uuid.uuid4()
    membership.join(ch, a, now)
    with pytest.raises(AlreadyJoined):
        membership.join(ch, a, now)


@pytest.mark.parametrize("status", ["completed", "cancelled"])
def test_closed_challenges_refuse_joins(make_challenge, now, status):
    ch = make_challenge()
    transition(ch, status, now)
    with pytest.raises(ChallengeClosed):
        membership.join(ch, uuid.uuid4(), now)


def test_join_after_end_date_is_refused(make_challenge, now):
    ch = make_challenge()
    with pytest.raises(ChallengeClosed):
        membership.join(ch, uuid.uuid4(), ch.end_date + timedelta(seconds=1))


def test_upcoming_challenge_accepts_joins(make_challenge, now):
    ch = make_challenge(start_date=now + timedelta(days=2), end_date=now + timedelta(days=9))
    assert ch.status == "upcoming"
    membership.join(ch, uuid.uuid4(), now)
    assert len(ch.active_participants()) == 1


def test_leave_then_rejoin_preserves_progress(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    membership.join(ch, a, now)
    apply_activity(ch, a, ActivityContribution(sport_type="running", distance=21.1), now)

    left = membership.leave(ch, a, now)
    assert left.is_active is False
    assert left.left_at == now
    assert left.progress_distance == pytest.approx(21.1)

    back = membership.join(ch, a, now + timedelta(hours=2))
    assert back is left
    assert back.is_active and back.left_at is None
    assert back.progress_distance == pytest.approx(21.1)
    assert len(ch.participants) == 1


def test_leave_requires_active_entry(make_challenge, now):
    ch = make_challenge()
    a = uuid.uuid4()
    with pytest.raises(NotAParticipant):
        membership.leave(ch, a, now)
    membership.join(ch, a, now)
    membership.leave(ch, a, now)
    with pytest.raises(NotAParticipant):
        membership.leave(ch, a, now)


def test_creator_may_leave(make_challenge, now):
    creator = uuid.uuid4()
    ch = make_challenge(creator_id=creator)
    membership.join(ch, creator, now)
    membership.leave(ch, creator, now)
    assert ch.active_participants() == []


def test_private_challenge_needs_matching_code(make_challenge, now):
    ch = make_challenge(visibility="private")
    ch.join_code = "RUN123"
    with pytest.raises(AccessDenied):
        membership.join(ch, uuid.uuid4(), now)
    with pytest.raises(AccessDenied):
        membership.join(ch, uuid.uuid4(), now, join_code="WRONG1")
    p = membership.join(ch, uuid.uuid4(), now, join_code=" run123 ")
    assert p.is_active


def test_invited_user_needs_no_code(make_challenge, now):
    creator, guest = uuid.uuid4(), uuid.uuid4()
    ch = make_challenge(creator_id=creator, visibility="friends_only")
    ch.join_code = "FRIEND"
    membership.invite(ch, creator, guest, now)
    membership.join(ch, guest, now)
    membership.join(ch, creator, now)
    assert len(ch.active_participants()) == 2


def test_requires_approval_needs_an_invite(make_challenge, now):
    creator, guest = uuid.uuid4(), uuid.uuid4()
    ch = make_challenge(creator_id=creator, requires_approval=True)
    with pytest.raises(AccessDenied):
        membership.join(ch, guest, now)
    membership.invite(ch, creator, guest, now)
    membership.join(ch, guest, now)


def test_only_creator_invites_and_invites_are_idempotent(make_challenge, now):
    creator, guest = uuid.uuid4(), uuid.uuid4()
    ch = make_challenge(creator_id=creator)
    with pytest.raises(AccessDenied):
        membership.invite(ch, guest, uuid.uuid4(), now)
    first = membership.invite(ch, creator, guest, now)
    again = membership.invite(ch, creator, guest, now)
    assert first is again
    assert len(ch.invites) == 1


def test_visibility(make_challenge, now):
    creator, member, guest, stranger = (uuid.uuid4() for _ in range(4))
    ch = make_challenge(creator_id=creator, visibility="private")
    ch.join_code = "SECRET"
    membership.join(ch, member, now, join_code="SECRET")
    membership.invite(ch, creator, guest, now)

    assert membership.can_view(ch, creator)
    assert membership.can_view(ch, member)
    assert membership.can_view(ch, guest)
    assert not membership.can_view(ch, stranger)
    assert membership.can_view(make_challenge(), stranger)
