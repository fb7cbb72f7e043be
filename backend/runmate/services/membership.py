from __future__ import annotations
import uuid
from datetime import datetime
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from runmate.errors import AccessDenied, AlreadyJoined, ChallengeClosed, ChallengeFull, NotFound
from runmate.models.challenge import Challenge, ChallengeGrowthPoint, ChallengeInvite, Participant
from runmate.services.join_code import normalize_code
from runmate.services.progress import active_participant, sync_totals

log = structlog.get_logger()


def new_participant(ch: Challenge, user_id: uuid.UUID, now: datetime) -> Participant:
    return Participant(
        id=uuid.uuid4(),
        challenge_id=ch.id,
        user_id=user_id,
        position=max((p.position for p in ch.participants), default=0) + 1,
        joined_at=now,
        is_active=True,
        progress_distance=0,
        progress_activities=0,
        progress_elevation=0,
        progress_time=0,
        progress_calories=0,
        rank=0,
        achievements=[],
    )


def record_growth_point(ch: Challenge, now: datetime) -> ChallengeGrowthPoint:
    point = ChallengeGrowthPoint(id=uuid.uuid4(), challenge_id=ch.id, recorded_at=now, count=len(ch.active_participants()))
    ch.growth_points.append(point)
    return point


def can_view(ch: Challenge, user_id: uuid.UUID) -> bool:
    return (
        ch.visibility == "public"
        or ch.creator_id == user_id
        or ch.find_participant(user_id) is not None
        or ch.is_invited(user_id)
    )


def check_access(ch: Challenge, user_id: uuid.UUID, join_code: str | None) -> None:
    """
    Public challenges are open. Private and friends_only challenges need an
    invite or the matching join code. requires_approval always needs an invite.
    The creator is implicitly invited to their own challenge.
    """
    invited = ch.creator_id == user_id or ch.is_invited(user_id)
    if invited:
        return
    if ch.requires_approval:
        raise AccessDenied("Challenge requires approval from its creator")
    if ch.visibility != "public":
        code = normalize_code(join_code)
        if not code or code != ch.join_code:
            raise AccessDenied("Invalid join code")


def join(ch: Challenge, user_id: uuid.UUID, now: datetime, join_code: str | None = None) -> Participant:
    if ch.status in ("completed", "cancelled") or now > ch.end_date:
        raise ChallengeClosed("Cannot join completed or cancelled challenge")

    existing = ch.find_participant(user_id)
    if existing is not None and existing.is_active:
        raise AlreadyJoined()

    check_access(ch, user_id, join_code)

    if len(ch.active_participants()) >= ch.max_participants:
        raise ChallengeFull()

    if existing is not None:
        # soft-left entries come back with their progress intact
        existing.is_active = True
        existing.left_at = None
        participant = existing
        log.info("participant_rejoined", challenge_id=str(ch.id), user_id=str(user_id), position=existing.position)
    else:
        participant = new_participant(ch, user_id, now)
        ch.participants.append(participant)

    sync_totals(ch)
    record_growth_point(ch, now)
    ch.updated_at = now
    return participant


def leave(ch: Challenge, user_id: uuid.UUID, now: datetime) -> Participant:
    participant = active_participant(ch, user_id)
    participant.is_active = False
    participant.left_at = now
    sync_totals(ch)
    record_growth_point(ch, now)
    ch.updated_at = now
    return participant


def invite(ch: Challenge, actor_id: uuid.UUID, user_id: uuid.UUID, now: datetime) -> ChallengeInvite:
    if ch.creator_id != actor_id:
        raise AccessDenied("Only the creator can invite participants")
    if ch.status in ("completed", "cancelled"):
        raise ChallengeClosed()
    existing = next((i for i in ch.invites if i.user_id == user_id), None)
    if existing is not None:
        return existing
    inv = ChallengeInvite(id=uuid.uuid4(), challenge_id=ch.id, user_id=user_id, invited_by=actor_id, created_at=now)
    ch.invites.append(inv)
    ch.updated_at = now
    return inv


async def resolve_join_code(session: AsyncSession, code: str) -> Challenge:
    normalized = normalize_code(code)
    ch = await session.scalar(select(Challenge).where(Challenge.join_code == normalized)) if normalized else None
    if ch is None:
        raise NotFound("Invalid join code")
    return ch
