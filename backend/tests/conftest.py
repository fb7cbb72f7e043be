from __future__ import annotations
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("STATUS_SWEEP_ON_READ", "0")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import datetime, timedelta, timezone
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from runmate.db import Base, engine_options, get_session
from runmate.main import app
from runmate.schemas.challenge import ChallengeCreate
from runmate.security import make_access_token
from runmate.services.lifecycle import build_challenge
import runmate.models.challenge  # noqa: F401

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TEST_DB = "sqlite+aiosqlite://"


def _auth_headers(user_id: uuid.UUID) -> dict:
    return {"Authorization": f"Bearer {make_access_token(str(user_id))}"}


@pytest.fixture
def auth():
    return _auth_headers


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_challenge():
    """Build an in-memory challenge (no database) from ChallengeCreate fields."""
    def _make(creator_id: uuid.UUID | None = None, now: datetime = NOW, **fields):
        data = {
            "title": "Spring Miles",
            "description": "Run together this month",
            "type": "distance",
            "goal": {"target": 100, "unit": "km"},
            "start_date": now - timedelta(days=1),
            "end_date": now + timedelta(days=29),
        }
        data.update(fields)
        return build_challenge(ChallengeCreate.model_validate(data), creator_id or uuid.uuid4(), now)
    return _make


@pytest_asyncio.fixture
async def session_factory():
    eng = create_async_engine(TEST_DB, **engine_options(TEST_DB))
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, expire_on_commit=False)
    await eng.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def client(session_factory):
    async def _session():
        async with session_factory() as s:
            yield s
    app.dependency_overrides[get_session] = _session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
