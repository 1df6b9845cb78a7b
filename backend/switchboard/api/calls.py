# backend/switchboard/api/calls.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import desc
from typing import List, Optional

from switchboard.db.database import get_db
from switchboard.models.models import User, CallLog
from switchboard.schemas.schemas import CallLogResponse
from switchboard.auth.auth import get_current_user

router = APIRouter(tags=["calls"])

STAFF_ROLES = {"admin", "manager"}


@router.get("/calls", response_model=List[CallLogResponse])
async def list_calls(
    user_id: Optional[int] = Query(None, alias="userId"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Call history, newest first. Staff may see everyone; others only themselves."""
    query = select(CallLog).order_by(desc(CallLog.started_at), desc(CallLog.id))

    if current_user.role in STAFF_ROLES:
        if user_id is not None:
            query = query.where(CallLog.user_id == user_id)
    else:
        query = query.where(CallLog.user_id == current_user.id)

    result = await db.execute(query.offset(offset).limit(limit))
    return result.scalars().all()
