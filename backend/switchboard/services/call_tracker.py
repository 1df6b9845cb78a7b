# backend/switchboard/services/call_tracker.py
"""
Call session tracker: which user is on which call right now.

One presence row per user at most. Ending a call moves the presence into
the call log.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Dict

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError

from switchboard.models.models import CallPresence, CallLog, CallLogStatus, CallDirection

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CallSessionTracker:
    """Per-user active call state"""

    async def get_presence(self, db: AsyncSession, user_id: int) -> Optional[CallPresence]:
        result = await db.execute(select(CallPresence).where(CallPresence.user_id == user_id))
        return result.scalar_one_or_none()

    async def presence_by_user(self, db: AsyncSession) -> Dict[int, CallPresence]:
        """All active calls keyed by user id."""
        result = await db.execute(select(CallPresence))
        return {presence.user_id: presence for presence in result.scalars().all()}

    async def start_call(
        self,
        db: AsyncSession,
        user_id: int,
        call_sid: str,
        caller_number: str,
        direction: str = CallDirection.INBOUND.value,
        started_at: Optional[datetime] = None
    ) -> CallPresence:
        """Record the user's current call. A second start overwrites the first."""
        started_at = _as_utc(started_at) if started_at else datetime.now(timezone.utc)

        fields = dict(call_sid=call_sid, caller_number=caller_number, direction=direction, started_at=started_at)
        try:
            presence = await self._write_presence(db, user_id, fields)
        except IntegrityError:
            # A concurrent start inserted the row first; update it instead
            await db.rollback()
            presence = await self._write_presence(db, user_id, fields)

        logger.info(f"📞 User {user_id} on call {call_sid} ({direction})")
        return presence

    async def _write_presence(self, db: AsyncSession, user_id: int, fields: Dict[str, Any]) -> CallPresence:
        presence = await self.get_presence(db, user_id)
        if presence is None:
            presence = CallPresence(user_id=user_id)
            db.add(presence)

        for name, value in fields.items():
            setattr(presence, name, value)

        await db.commit()
        await db.refresh(presence)
        return presence

    async def end_call(self, db: AsyncSession, user_id: int) -> Optional[CallLog]:
        """
        Clear the user's current call and log it.

        Returns None when the user had no active call; ending twice is not an
        error.
        """
        presence = await self.get_presence(db, user_id)
        if presence is None:
            logger.debug(f"User {user_id} ended a call with no active presence")
            return None

        ended_at = datetime.now(timezone.utc)
        started_at = _as_utc(presence.started_at)
        duration = max(0, int((ended_at - started_at).total_seconds()))

        call_log = CallLog(
            user_id=user_id,
            call_sid=presence.call_sid,
            phone_number=presence.caller_number,
            direction=presence.direction,
            status=CallLogStatus.COMPLETED.value,
            duration_seconds=duration,
            started_at=started_at,
            ended_at=ended_at,
        )
        db.add(call_log)
        await db.delete(presence)
        await db.commit()
        await db.refresh(call_log)

        logger.info(f"📴 User {user_id} ended call {call_log.call_sid} after {duration}s")
        return call_log


# Singleton instance
call_tracker = CallSessionTracker()
