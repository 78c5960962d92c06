"""Call log service - audit trail of telephony attempts."""

from datetime import datetime
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from rally.models.call_log import CallLog, CallLogStatus


class CallLogService:
    """Service class for call log operations.

    Rows are append-only; only the terminal fields are filled in once the
    transport reports how the call ended.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_attempt(
        self,
        wakeup_call_id: UUID,
        started_at: datetime,
        call_sid: str | None = None,
        error: str | None = None,
    ) -> CallLog:
        """Log one attempt to place a call."""
        log = CallLog(
            wakeup_call_id=wakeup_call_id,
            call_sid=call_sid,
            status=CallLogStatus.FAILED.value if error else CallLogStatus.QUEUED.value,
            error=error,
            started_at=started_at,
        )
        self.db.add(log)
        await self.db.flush()
        return log

    async def get_by_call_sid(self, call_sid: str) -> CallLog | None:
        """Get the log row for a transport call id."""
        result = await self.db.execute(
            select(CallLog).where(CallLog.call_sid == call_sid)
        )
        return result.scalar_one_or_none()

    async def record_outcome(
        self,
        call_sid: str,
        status: str,
        duration: int | None = None,
        error: str | None = None,
    ) -> CallLog | None:
        """Fill in the terminal fields of an attempt. Returns None for unknown call ids."""
        log = await self.get_by_call_sid(call_sid)
        if log is None:
            return None
        log.status = status
        if duration is not None:
            log.duration = duration
        if error is not None:
            log.error = error
        await self.db.flush()
        return log

    async def get_call_logs(self, wakeup_call_id: UUID) -> list[CallLog]:
        """Get all telephony attempts for a call, newest first."""
        result = await self.db.execute(
            select(CallLog)
            .where(CallLog.wakeup_call_id == wakeup_call_id)
            .order_by(CallLog.started_at.desc())
        )
        return list(result.scalars().all())
