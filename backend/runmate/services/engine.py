from __future__ import annotations
import uuid
from datetime import datetime, timezone as dt_tz
from typing import Callable, TypeVar
import structlog
from sqlalchemy import select, exists, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from runmate.config import settings
from runmate.errors import (
    AccessDenied, ActivityTypeNotAllowed, ChallengeClosed, ConcurrentUpdateFailed, DuplicateJoinCode,
    NotAParticipant, NotFound,
)
from runmate.models.challenge import Challenge, ChallengeInvite, Participant
from runmate.schemas.activity import ActivityCompleted, ActivityContribution, ProgressUpdatePublic
from runmate.schemas.challenge import ChallengeCreate, ChallengeUpdate
from runmate.services import membership
from runmate.services.join_code import generate_code, normalize_code
from runmate.services.leaderboard import LeaderboardEntry, apply_ranks, compute_leaderboard
from runmate.services.lifecycle import apply_update, build_challenge, is_active, transition, validate_definition
from runmate.services.locks import challenge_lock
from runmate.services.milestones import Evaluation, advance_by_clock, evaluate
from runmate.services.progress import apply_activity
from runmate.services.stats import challenge_stats
from runmate.services.views import to_progress_update

log = structlog.get_logger()

T = TypeVar("T")

TRENDING_LIMIT = 12


def _utcnow() -> datetime:
    return datetime.now(dt_tz.utc)


def parse_id(challenge_id) -> uuid.UUID:
    if isinstance(challenge_id, uuid.UUID):
        return challenge_id
    try:
        return uuid.UUID(str(challenge_id))
    except ValueError:
        raise NotFound()


async def load_challenge(session: AsyncSession, challenge_id, *, for_update: bool = False) -> Challenge:
    q = select(Challenge).where(Challenge.id == parse_id(challenge_id)).execution_options(populate_existing=True)
    if for_update:
        q = q.with_for_update(of=Challenge)
    ch = await session.scalar(q)
    if ch is None:
        raise NotFound()
    return ch


async def _mutate(session: AsyncSession, challenge_id, mutate: Callable[[Challenge], T]) -> tuple[Challenge, T]:
    """
    Apply `mutate` to the freshly loaded aggregate and commit, all-or-nothing.
    Writers of one challenge are serialized by the in-process lock and the
    row lock; a version conflict from another process is retried.
    """
    cid = parse_id(challenge_id)
    attempts = max(1, settings.update_retry_attempts)
    async with challenge_lock(cid):
        for attempt in range(1, attempts + 1):
            try:
                ch = await load_challenge(session, cid, for_update=True)
                result = mutate(ch)
                if session.new or session.dirty:
                    # writes to child rows still go through the version check on the aggregate row
                    flag_modified(ch, "updated_at")
                await session.commit()
                return ch, result
            except StaleDataError:
                await session.rollback()
                log.warning("challenge_update_conflict", challenge_id=str(cid), attempt=attempt)
            except Exception:
                await session.rollback()
                raise
    log.error("challenge_update_failed", challenge_id=str(cid), attempts=attempts)
    raise ConcurrentUpdateFailed()


def _require_creator(ch: Challenge, actor_id: uuid.UUID, action: str) -> None:
    if ch.creator_id != actor_id:
        raise AccessDenied(f"Only the creator can {action}")


# ---------- challenges ----------

async def create_challenge(session: AsyncSession, definition: ChallengeCreate, creator_id: uuid.UUID, now: datetime | None = None) -> Challenge:
    now = now or _utcnow()
    validate_definition(definition, now)
    requested = normalize_code(definition.join_code)

    # Generate a unique join code (retry on collision); public challenges only get one on request
    for _ in range(max(1, settings.join_code_attempts)):
        code = requested or (generate_code() if definition.visibility != "public" else None)
        if code and await session.scalar(select(exists().where(Challenge.join_code == code))):
            if requested:
                raise DuplicateJoinCode()
            continue
        ch = build_challenge(definition, creator_id, now, code)
        session.add(ch)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            if requested:
                raise DuplicateJoinCode()
            continue
        log.info("challenge_created", challenge_id=str(ch.id), creator_id=str(creator_id), status=ch.status)
        return ch
    raise DuplicateJoinCode("Failed to generate a unique join code")


async def get_challenge(session: AsyncSession, challenge_id, viewer_id: uuid.UUID) -> Challenge:
    ch = await load_challenge(session, challenge_id)
    if not membership.can_view(ch, viewer_id):
        raise AccessDenied()
    return ch


async def update_challenge(session: AsyncSession, challenge_id, actor_id: uuid.UUID, changes: ChallengeUpdate, now: datetime | None = None) -> Challenge:
    now = now or _utcnow()

    def mutate(ch: Challenge) -> None:
        _require_creator(ch, actor_id, "update this challenge")
        apply_update(ch, changes, now)

    ch, _ = await _mutate(session, challenge_id, mutate)
    log.info("challenge_updated", challenge_id=str(ch.id), fields=sorted(changes.model_dump(exclude_none=True)))
    return ch


async def change_status(session: AsyncSession, challenge_id, actor_id: uuid.UUID, status: str, now: datetime | None = None) -> Challenge:
    now = now or _utcnow()

    def mutate(ch: Challenge) -> None:
        _require_creator(ch, actor_id, "change the status")
        transition(ch, status, now)

    ch, _ = await _mutate(session, challenge_id, mutate)
    log.info("challenge_status_changed", challenge_id=str(ch.id), status=ch.status)
    return ch


async def list_visible_challenges(
    session: AsyncSession, user_id: uuid.UUID, status: str | None = None, type_: str | None = None,
    limit: int = 50, offset: int = 0,
) -> list[Challenge]:
    q = select(Challenge).where(
        or_(
            Challenge.visibility == "public",
            Challenge.creator_id == user_id,
            Challenge.participants.any(Participant.user_id == user_id),
            Challenge.invites.any(ChallengeInvite.user_id == user_id),
        )
    )
    if status:
        q = q.where(Challenge.status == status)
    if type_:
        q = q.where(Challenge.type == type_)
    q = q.order_by(Challenge.created_at.desc()).limit(limit).offset(offset)
    return list((await session.execute(q)).scalars().all())


async def list_active_challenges_for_user(session: AsyncSession, user_id: uuid.UUID) -> list[Challenge]:
    q = (
        select(Challenge)
        .join(Participant, Participant.challenge_id == Challenge.id)
        .where(Participant.user_id == user_id, Participant.is_active.is_(True), Challenge.status == "active")
        .order_by(Challenge.end_date.asc())
    )
    return list((await session.execute(q)).scalars().all())


async def list_my_challenges(session: AsyncSession, user_id: uuid.UUID) -> list[Challenge]:
    """Every challenge the user is an active participant of, finished ones included."""
    q = (
        select(Challenge)
        .join(Participant, Participant.challenge_id == Challenge.id)
        .where(Participant.user_id == user_id, Participant.is_active.is_(True))
        .order_by(Challenge.created_at.desc())
    )
    return list((await session.execute(q)).scalars().all())


async def list_trending_challenges(session: AsyncSession, limit: int = TRENDING_LIMIT) -> list[Challenge]:
    q = select(Challenge).where(Challenge.visibility == "public").order_by(Challenge.created_at.desc()).limit(limit)
    return list((await session.execute(q)).scalars().all())


# ---------- membership ----------

async def join_challenge(session: AsyncSession, challenge_id, user_id: uuid.UUID, join_code: str | None = None, now: datetime | None = None) -> Participant:
    now = now or _utcnow()
    ch, participant = await _mutate(session, challenge_id, lambda ch: membership.join(ch, user_id, now, join_code))
    log.info("participant_joined", challenge_id=str(ch.id), user_id=str(user_id), participants=len(ch.active_participants()))
    return participant


async def join_by_code(session: AsyncSession, join_code: str, user_id: uuid.UUID, now: datetime | None = None) -> Participant:
    ch = await membership.resolve_join_code(session, join_code)
    return await join_challenge(session, ch.id, user_id, join_code=join_code, now=now)


async def leave_challenge(session: AsyncSession, challenge_id, user_id: uuid.UUID, now: datetime | None = None) -> Participant:
    now = now or _utcnow()
    ch, participant = await _mutate(session, challenge_id, lambda ch: membership.leave(ch, user_id, now))
    log.info("participant_left", challenge_id=str(ch.id), user_id=str(user_id), participants=len(ch.active_participants()))
    return participant


async def invite_user(session: AsyncSession, challenge_id, actor_id: uuid.UUID, user_id: uuid.UUID, now: datetime | None = None) -> ChallengeInvite:
    now = now or _utcnow()
    ch, inv = await _mutate(session, challenge_id, lambda ch: membership.invite(ch, actor_id, user_id, now))
    log.info("participant_invited", challenge_id=str(ch.id), user_id=str(user_id))
    return inv


# ---------- progress ----------

async def get_leaderboard(session: AsyncSession, challenge_id, viewer_id: uuid.UUID) -> list[LeaderboardEntry]:
    ch = await get_challenge(session, challenge_id, viewer_id)
    if not ch.enable_leaderboard:
        raise AccessDenied("Leaderboard is disabled for this challenge")
    return compute_leaderboard(ch)


async def get_stats(session: AsyncSession, challenge_id, viewer_id: uuid.UUID, now: datetime | None = None) -> dict:
    ch = await get_challenge(session, challenge_id, viewer_id)
    return challenge_stats(ch, now or _utcnow())


async def list_participants(session: AsyncSession, challenge_id, viewer_id: uuid.UUID, include_inactive: bool = False) -> list[Participant]:
    ch = await get_challenge(session, challenge_id, viewer_id)
    return list(ch.participants) if include_inactive else ch.active_participants()


def _record(ch: Challenge, user_id: uuid.UUID, contribution: ActivityContribution, now: datetime) -> tuple[Participant, Evaluation]:
    if ch.status in ("completed", "cancelled"):
        raise ChallengeClosed()
    if not is_active(ch, now):
        raise ChallengeClosed("Challenge is not running")
    if contribution.sport_type not in ch.allowed_activity_types:
        raise ActivityTypeNotAllowed(f"{contribution.sport_type} does not count toward this challenge")

    participant = apply_activity(ch, user_id, contribution, now)
    try:
        evaluation = evaluate(ch, participant, now)
    except Exception:
        # a counted activity outweighs a lost badge
        log.exception("milestone_evaluation_failed", challenge_id=str(ch.id), user_id=str(user_id))
        evaluation = Evaluation()
    apply_ranks(ch, compute_leaderboard(ch))
    return participant, evaluation


async def record_activity_contribution(
    session: AsyncSession, challenge_id, user_id: uuid.UUID, contribution: ActivityContribution, now: datetime | None = None,
) -> ProgressUpdatePublic:
    now = now or _utcnow()
    ch, (participant, evaluation) = await _mutate(session, challenge_id, lambda ch: _record(ch, user_id, contribution, now))
    log.info(
        "activity_recorded",
        challenge_id=str(ch.id),
        user_id=str(user_id),
        achievements=[a.type for a in evaluation.new_achievements],
        completed=evaluation.completed,
    )
    return to_progress_update(ch, participant, evaluation)


async def on_activity_completed(session: AsyncSession, user_id: uuid.UUID, event: ActivityCompleted, now: datetime | None = None) -> list[ProgressUpdatePublic]:
    """Fan one finished workout out to every running challenge it counts toward."""
    now = now or _utcnow()
    occurred_at = event.occurred_at or now
    candidates = [
        ch.id for ch in await list_active_challenges_for_user(session, user_id)
        if event.sport_type in ch.allowed_activity_types
        and ch.start_date <= occurred_at <= ch.end_date
        and is_active(ch, now)
    ]
    updates = []
    for cid in candidates:
        try:
            updates.append(await record_activity_contribution(session, cid, user_id, event.contribution(), now=now))
        except (ChallengeClosed, NotAParticipant) as e:
            # lost a race with completion or a leave since the listing
            log.info("activity_skipped", challenge_id=str(cid), user_id=str(user_id), reason=e.code)
        except ConcurrentUpdateFailed as e:
            # retries exhausted on this one; the others still get the workout
            log.warning("activity_skipped", challenge_id=str(cid), user_id=str(user_id), reason=e.code)
    return updates


# ---------- clock ----------

async def advance_challenge(session: AsyncSession, challenge_id, now: datetime | None = None) -> bool:
    now = now or _utcnow()
    ch, changed = await _mutate(session, challenge_id, lambda ch: advance_by_clock(ch, now))
    if changed:
        log.info("challenge_status_advanced", challenge_id=str(ch.id), status=ch.status, winner=str(ch.winner_user_id) if ch.winner_user_id else None)
    return changed


async def challenges_due_for_sweep(session: AsyncSession, now: datetime) -> list[uuid.UUID]:
    q = select(Challenge.id).where(
        or_(
            and_(Challenge.status == "upcoming", Challenge.start_date <= now),
            and_(Challenge.status == "active", Challenge.end_date < now),
        )
    )
    return list((await session.execute(q)).scalars().all())
