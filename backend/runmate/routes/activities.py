from __future__ import annotations
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from runmate.db import get_session
from runmate.auth_deps import get_current_user_id
from runmate.schemas.activity import ActivityCompleted, ProgressUpdatePublic
from runmate.services import engine

router = APIRouter(prefix="/activities", tags=["activities"])

@router.post("/completed", response_model=list[ProgressUpdatePublic])
async def activity_completed(
    payload: ActivityCompleted,
    session: AsyncSession = Depends(get_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    """Credit a finished workout to every running challenge the caller is in."""
    return await engine.on_activity_completed(session, user_id, payload)
