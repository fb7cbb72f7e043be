from __future__ import annotations
import asyncio
from datetime import datetime, timezone as dt_tz
import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from runmate.db import SessionLocal
from runmate.errors import ChallengeError
from runmate.services.engine import advance_challenge, challenges_due_for_sweep

log = structlog.get_logger()


async def sweep(session: AsyncSession, now: datetime) -> int:
    """Advance every challenge whose stored status lags the clock. Returns how many moved."""
    moved = 0
    for cid in await challenges_due_for_sweep(session, now):
        try:
            if await advance_challenge(session, cid, now=now):
                moved += 1
        except ChallengeError as e:
            # one bad aggregate must not stall the rest of the sweep
            log.warning("status_sweep_failed", challenge_id=str(cid), code=e.code, error=str(e))
    log.info("status_sweep_done", moved=moved)
    return moved


async def _run(challenge_id: str | None = None) -> int:
    now = datetime.now(dt_tz.utc)
    async with SessionLocal() as session:
        if challenge_id is None:
            return await sweep(session, now)
        return int(await advance_challenge(session, challenge_id, now=now))


def sweep_statuses() -> int:
    # RQ entry point (sync); run the async coroutine
    return asyncio.run(_run())


def sweep_challenge(challenge_id: str) -> int:
    return asyncio.run(_run(challenge_id))
