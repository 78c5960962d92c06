"""Wake-up call state machine - the only writer of ``WakeUpCall.status``.

    pending --initiate--> initiated --complete--> completed
                          initiated --snooze----> snoozed --initiate--> initiated
                          initiated/snoozed --miss--> missed

A recurring call that reaches ``completed`` or ``missed`` is re-armed to
``pending`` at its next occurrence, or deactivated once its series is
exhausted.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable
from uuid import UUID
from zoneinfo import ZoneInfo

import logfire
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from rally.database import utcnow
from rally.errors import InvalidTransitionError, NotFoundError, TransportError, WakeUpValidationError
from rally.models.snooze import Snooze
from rally.models.user import DEFAULT_MAX_SNOOZE_COUNT, DEFAULT_SNOOZE_DURATION, User
from rally.models.wakeup_call import CallStatus, WakeUpCall
from rally.services.call_log_service import CallLogService
from rally.services.recurrence import next_occurrence
from rally.services.voice_commands import parse_snooze_duration
from rally.telephony.base import TelephonyTransport
from rally.telephony.prompts import (
    SNOOZE_DISABLED,
    SNOOZE_INVITATION,
    SNOOZE_LIMIT_REACHED,
    snooze_confirmation,
    snooze_fallback,
)

logger = logging.getLogger(__name__)


class SnoozeResult(str, Enum):
    """How a snooze request was resolved."""
    SNOOZED = "snoozed"
    DISABLED = "disabled"
    LIMIT_REACHED = "limit_reached"


@dataclass
class SnoozeOutcome:
    """Result of a snooze negotiation, returned to the voice flow."""
    success: bool
    result: SnoozeResult
    markup: str
    minutes: int | None = None
    snooze_until: datetime | None = None
    used_default: bool = False


@dataclass
class InitiateResult:
    """Prompt handed to the transport when a call starts ringing."""
    wakeup_call_id: UUID
    markup: str
    call_sid: str | None = None


class CallLocks:
    """One asyncio.Lock per wake-up call, dropped once nobody waits on it."""

    def __init__(self):
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._holders: dict[UUID, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: UUID):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]


class WakeUpCallStateMachine:
    """Lifecycle transitions for wake-up calls.

    Each transition runs in its own transaction while holding the call's
    lock. The row is read ``FOR UPDATE`` and the status write is guarded by
    the status that was read, so a concurrent writer in another process turns
    into an InvalidTransitionError instead of a lost update.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: TelephonyTransport,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.transport = transport
        self.clock = clock
        self._locks = CallLocks()

    # ==================== TRANSITIONS ====================

    async def initiate(self, wakeup_call_id: UUID, place_call: bool = True) -> InitiateResult:
        """Start ringing a pending call, or a snoozed call whose snooze has elapsed."""
        async with self._locks.hold(wakeup_call_id):
            return await self._initiate(wakeup_call_id, place_call)

    async def answer(self, wakeup_call_id: UUID) -> str:
        """Prompt markup for a call the transport is connecting.

        Calls that are already ringing get their prompt re-rendered; calls that
        are still waiting are initiated without dialing again.
        """
        async with self._locks.hold(wakeup_call_id):
            async with self.session_factory() as session:
                call = await self._load(session, wakeup_call_id, for_update=False)
                if call.status == CallStatus.INITIATED.value:
                    return self.transport.initial_prompt(call.id, call.message, SNOOZE_INVITATION)

            result = await self._initiate(wakeup_call_id, place_call=False)
            return result.markup

    async def complete(self, wakeup_call_id: UUID) -> WakeUpCall:
        """The recipient let the call finish."""
        async with self._locks.hold(wakeup_call_id):
            async with self.session_factory() as session:
                async with session.begin():
                    call = await self._load(session, wakeup_call_id)
                    if call.status != CallStatus.INITIATED.value:
                        raise InvalidTransitionError(call.id, call.status, "complete")
                    await self._finish(session, call, CallStatus.COMPLETED, action="complete")

        logger.info(f"Wake-up call {wakeup_call_id} completed")
        logfire.info("wakeup_call_completed", wakeup_call_id=str(wakeup_call_id), status=call.status)
        return call

    async def miss(self, wakeup_call_id: UUID) -> WakeUpCall:
        """No terminal callback arrived in time."""
        async with self._locks.hold(wakeup_call_id):
            async with self.session_factory() as session:
                async with session.begin():
                    call = await self._load(session, wakeup_call_id)
                    if call.status not in (CallStatus.INITIATED.value, CallStatus.SNOOZED.value):
                        raise InvalidTransitionError(call.id, call.status, "miss")
                    await self._finish(session, call, CallStatus.MISSED, action="miss")

        logger.info(f"Wake-up call {wakeup_call_id} missed")
        logfire.info("wakeup_call_missed", wakeup_call_id=str(wakeup_call_id), status=call.status)
        return call

    async def snooze(self, wakeup_call_id: UUID, transcript: str | None) -> SnoozeOutcome:
        """Negotiate a snooze from the recipient's spoken or keyed response."""
        async with self._locks.hold(wakeup_call_id):
            async with self.session_factory() as session:
                async with session.begin():
                    call = await self._load(session, wakeup_call_id)
                    if call.status != CallStatus.INITIATED.value:
                        raise InvalidTransitionError(call.id, call.status, "snooze")

                    preferences = call.user.preferences
                    if preferences is not None and not preferences.allow_snooze:
                        logfire.info("snooze_disabled", wakeup_call_id=str(wakeup_call_id))
                        return SnoozeOutcome(
                            success=False,
                            result=SnoozeResult.DISABLED,
                            markup=self.transport.prompt(SNOOZE_DISABLED),
                        )

                    requested = parse_snooze_duration(transcript)
                    default_minutes = (
                        preferences.default_snooze_duration if preferences else DEFAULT_SNOOZE_DURATION
                    )
                    minutes = requested if requested is not None else default_minutes
                    if minutes < 1:
                        raise WakeUpValidationError(f"Snooze duration must be positive, got {minutes}")

                    snooze_count = await session.scalar(
                        select(func.count(Snooze.id)).where(Snooze.wakeup_call_id == call.id)
                    )
                    max_count = preferences.max_snooze_count if preferences else DEFAULT_MAX_SNOOZE_COUNT
                    if snooze_count >= max_count:
                        logfire.info(
                            "snooze_limit_reached",
                            wakeup_call_id=str(wakeup_call_id),
                            snooze_count=snooze_count,
                        )
                        return SnoozeOutcome(
                            success=False,
                            result=SnoozeResult.LIMIT_REACHED,
                            markup=self.transport.prompt(SNOOZE_LIMIT_REACHED),
                            minutes=minutes,
                        )

                    now = self.clock()
                    snooze_until = now + timedelta(minutes=minutes)
                    await self._set_status(
                        session,
                        call,
                        expected={CallStatus.INITIATED.value},
                        action="snooze",
                        status=CallStatus.SNOOZED.value,
                        actual_time=snooze_until,
                    )
                    session.add(
                        Snooze(wakeup_call_id=call.id, snoozed_at=now, snooze_until=snooze_until)
                    )

        used_default = requested is None
        message = snooze_fallback(minutes) if used_default else snooze_confirmation(minutes)
        logger.info(f"Wake-up call {wakeup_call_id} snoozed for {minutes} minutes")
        logfire.info(
            "wakeup_call_snoozed",
            wakeup_call_id=str(wakeup_call_id),
            minutes=minutes,
            used_default=used_default,
        )
        return SnoozeOutcome(
            success=True,
            result=SnoozeResult.SNOOZED,
            markup=self.transport.prompt(message),
            minutes=minutes,
            snooze_until=snooze_until,
            used_default=used_default,
        )

    # ==================== HELPERS ====================

    async def _initiate(self, wakeup_call_id: UUID, place_call: bool) -> InitiateResult:
        """Body of ``initiate``; the caller holds the call's lock."""
        async with self.session_factory() as session:
            async with session.begin():
                call = await self._load(session, wakeup_call_id)
                now = self.clock()
                self._check_initiable(call, now)

                markup = self.transport.initial_prompt(call.id, call.message, SNOOZE_INVITATION)
                await self._set_status(
                    session,
                    call,
                    expected={call.status},
                    action="initiate",
                    status=CallStatus.INITIATED.value,
                    actual_time=now,
                )
                phone_number = call.phone_number

            logger.info(f"Wake-up call {wakeup_call_id} initiated")
            logfire.info("wakeup_call_initiated", wakeup_call_id=str(wakeup_call_id))

            if not place_call:
                return InitiateResult(wakeup_call_id=wakeup_call_id, markup=markup)

            try:
                call_sid = await self.transport.place_call(wakeup_call_id, phone_number, markup)
            except TransportError as e:
                async with session.begin():
                    await CallLogService(session).record_attempt(wakeup_call_id, now, error=e.message)
                raise

            async with session.begin():
                await CallLogService(session).record_attempt(wakeup_call_id, now, call_sid=call_sid)

            return InitiateResult(wakeup_call_id=wakeup_call_id, markup=markup, call_sid=call_sid)

    async def _load(self, session: AsyncSession, wakeup_call_id: UUID, for_update: bool = True) -> WakeUpCall:
        query = (
            select(WakeUpCall)
            .where(WakeUpCall.id == wakeup_call_id)
            .options(selectinload(WakeUpCall.user))
        )
        if for_update:
            query = query.with_for_update(of=WakeUpCall)
        call = (await session.execute(query)).scalar_one_or_none()
        if call is None:
            raise NotFoundError(f"Wake-up call {wakeup_call_id} not found")
        return call

    def _check_initiable(self, call: WakeUpCall, now: datetime) -> None:
        if call.status == CallStatus.PENDING.value:
            if not call.is_active:
                raise InvalidTransitionError(call.id, "inactive", "initiate")
            return
        if call.status == CallStatus.SNOOZED.value:
            if call.actual_time is not None and call.actual_time > now:
                raise InvalidTransitionError(
                    call.id, f"snoozed until {call.actual_time.isoformat()}", "initiate"
                )
            return
        raise InvalidTransitionError(call.id, call.status, "initiate")

    async def _set_status(
        self,
        session: AsyncSession,
        call: WakeUpCall,
        expected: set[str],
        action: str,
        **values,
    ) -> None:
        """Write the new status only if the row still holds one of ``expected``."""
        result = await session.execute(
            update(WakeUpCall)
            .where(WakeUpCall.id == call.id, WakeUpCall.status.in_(sorted(expected)))
            .values(**values)
        )
        if result.rowcount != 1:
            await session.refresh(call, attribute_names=["status"])
            raise InvalidTransitionError(call.id, call.status, action)

    async def _finish(self, session: AsyncSession, call: WakeUpCall, terminal: CallStatus, action: str) -> None:
        """Move to a terminal status, re-arming recurring calls."""
        now = self.clock()
        expected = {call.status}
        rule = call.recurrence_rule

        if rule is None or rule.exhausted_at is not None:
            await self._set_status(
                session, call, expected, action, status=terminal.value, actual_time=now
            )
            return

        next_time = next_occurrence(rule, max(call.scheduled_time, now), self._user_timezone(call.user))
        if next_time is None:
            await self._set_status(
                session,
                call,
                expected,
                action,
                status=terminal.value,
                actual_time=now,
                is_active=False,
            )
            rule.exhausted_at = now
            logger.info(f"Recurring wake-up call {call.id} exhausted its series")
            logfire.info("wakeup_series_exhausted", wakeup_call_id=str(call.id))
            return

        await self._set_status(
            session,
            call,
            expected,
            action,
            status=CallStatus.PENDING.value,
            scheduled_time=next_time,
            actual_time=None,
        )
        # Snooze counts are per occurrence
        await session.execute(delete(Snooze).where(Snooze.wakeup_call_id == call.id))
        logfire.info(
            "wakeup_call_rearmed",
            wakeup_call_id=str(call.id),
            outcome=terminal.value,
            next_time=next_time.isoformat(),
        )

    @staticmethod
    def _user_timezone(user: User | None) -> ZoneInfo | None:
        if user is None or user.preferences is None:
            return None
        return ZoneInfo(user.preferences.timezone)
