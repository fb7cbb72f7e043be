from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone as dt_tz
import uuid
import structlog
from rq import Queue
from redis import Redis
from redis.exceptions import RedisError
from runmate.db import get_session
from runmate.auth_deps import get_current_user_id
from runmate.config import settings
from runmate.models.challenge import Challenge
from runmate.schemas.activity import ActivityContribution, ProgressUpdatePublic
from runmate.schemas.challenge import (
    ChallengeCreate, ChallengePublic, ChallengeStats, ChallengeStatus, ChallengeType, ChallengeUpdate,
    InviteCreate, InvitePublic, JoinRequest, LeaderboardRow, MyChallengePublic, ParticipantPublic, StatusChange,
)
from runmate.services import engine
from runmate.services.lifecycle import needs_sweep
from runmate.services.membership import resolve_join_code
from runmate.services.views import (
    to_challenge_public, to_invite_public, to_leaderboard_row, to_my_challenge_public, to_participant_public,
)
from runmate.jobs.status_sweep import sweep_challenge

router = APIRouter(prefix="/challenges", tags=["challenges"])
log = structlog.get_logger()

# RQ queue (lazy single instance)
_redis = Redis.from_url(settings.redis_url)
q = Queue("default", connection=_redis)

def _now() -> datetime:
    return datetime.now(dt_tz.utc)

def enqueue_sweep_if_stale(ch: Challenge, now: datetime) -> None:
    if not settings.status_sweep_on_read or not needs_sweep(ch, now):
        return
    try:
        q.enqueue(sweep_challenge, str(ch.id))
    except RedisError as e:
        # the periodic sweep will catch up
        log.warning("status_sweep_enqueue_failed", challenge_id=str(ch.id), error=str(e))

def present(ch: Challenge, user_id: uuid.UUID) -> ChallengePublic:
    now = _now()
    enqueue_sweep_if_stale(ch, now)
    return to_challenge_public(ch, user_id, now)

@router.post("", response_model=ChallengePublic, status_code=201)
async def create_challenge(
    payload: ChallengeCreate,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    ch = await engine.create_challenge(session, payload, user_id)
    return to_challenge_public(ch, user_id, _now())

@router.get("", response_model=list[ChallengePublic])
async def list_challenges(
    status: ChallengeStatus | None = Query(default=None),
    type: ChallengeType | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    rows = await engine.list_visible_challenges(session, user_id, status=status, type_=type, limit=limit, offset=offset)
    return [present(ch, user_id) for ch in rows]

@router.get("/active", response_model=list[ChallengePublic])
async def list_active(session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    rows = await engine.list_active_challenges_for_user(session, user_id)
    return [present(ch, user_id) for ch in rows]

@router.get("/my-challenges", response_model=list[MyChallengePublic])
async def my_challenges(session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    rows = await engine.list_my_challenges(session, user_id)
    now = _now()
    for ch in rows:
        enqueue_sweep_if_stale(ch, now)
    return [to_my_challenge_public(ch, user_id, now) for ch in rows]

@router.get("/trending", response_model=list[ChallengePublic])
async def trending(session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    rows = await engine.list_trending_challenges(session)
    return [present(ch, user_id) for ch in rows]

@router.get("/code/{join_code}", response_model=ChallengePublic)
async def get_by_code(join_code: str, session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    # holding the code is enough to preview the challenge
    ch = await resolve_join_code(session, join_code)
    return present(ch, user_id)

@router.post("/code/{join_code}/join", response_model=ParticipantPublic, status_code=201)
async def join_by_code(join_code: str, session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    p = await engine.join_by_code(session, join_code, user_id)
    return to_participant_public(p)

@router.get("/{challenge_id}", response_model=ChallengePublic)
async def get_challenge(challenge_id: str, session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    ch = await engine.get_challenge(session, challenge_id, user_id)
    return present(ch, user_id)

@router.patch("/{challenge_id}", response_model=ChallengePublic)
async def update_challenge(
    challenge_id: str,
    payload: ChallengeUpdate,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    ch = await engine.update_challenge(session, challenge_id, user_id, payload)
    return to_challenge_public(ch, user_id, _now())

@router.post("/{challenge_id}/status", response_model=ChallengePublic)
async def change_status(
    challenge_id: str,
    payload: StatusChange,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    ch = await engine.change_status(session, challenge_id, user_id, payload.status)
    return to_challenge_public(ch, user_id, _now())

@router.post("/{challenge_id}/invites", response_model=InvitePublic, status_code=201)
async def invite(
    challenge_id: str,
    payload: InviteCreate,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    inv = await engine.invite_user(session, challenge_id, user_id, payload.user_id)
    return to_invite_public(inv)

@router.post("/{challenge_id}/join", response_model=ParticipantPublic, status_code=201)
async def join(
    challenge_id: str,
    payload: JoinRequest | None = None,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    p = await engine.join_challenge(session, challenge_id, user_id, join_code=payload.join_code if payload else None)
    return to_participant_public(p)

@router.post("/{challenge_id}/leave", response_model=ParticipantPublic)
async def leave(challenge_id: str, session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    p = await engine.leave_challenge(session, challenge_id, user_id)
    return to_participant_public(p)

@router.get("/{challenge_id}/participants", response_model=list[ParticipantPublic])
async def list_participants(
    challenge_id: str,
    include_inactive: bool = Query(default=False),
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    rows = await engine.list_participants(session, challenge_id, user_id, include_inactive=include_inactive)
    return [to_participant_public(p) for p in rows]

@router.get("/{challenge_id}/leaderboard", response_model=list[LeaderboardRow])
async def leaderboard(challenge_id: str, session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    entries = await engine.get_leaderboard(session, challenge_id, user_id)
    return [to_leaderboard_row(e) for e in entries]

@router.post("/{challenge_id}/progress", response_model=ProgressUpdatePublic)
async def record_progress(
    challenge_id: str,
    payload: ActivityContribution,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await engine.record_activity_contribution(session, challenge_id, user_id, payload)

@router.get("/{challenge_id}/stats", response_model=ChallengeStats)
async def stats(challenge_id: str, session: AsyncSession = Depends(get_session), user_id: uuid.UUID = Depends(get_current_user_id)):
    return await engine.get_stats(session, challenge_id, user_id)
