"""Scheduling poller - finds due wake-up calls and hands them to the state machine."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable
from uuid import UUID

import logfire
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rally.errors import InvalidTransitionError, NotFoundError, TransportError
from rally.models.wakeup_call import CallStatus, WakeUpCall
from rally.services.state_machine import WakeUpCallStateMachine

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """What one poller tick did."""
    ran_at: datetime
    initiated: list[UUID] = field(default_factory=list)
    missed: list[UUID] = field(default_factory=list)
    failed: list[tuple[UUID, str]] = field(default_factory=list)


class SchedulingPoller:
    """Runs one scheduling pass per ``tick``.

    A tick first sweeps calls stuck in ``initiated`` or ``snoozed`` past the
    grace period to ``missed``, then initiates every due call. Calls are
    processed independently: a failure is logged and recorded in the report,
    and the rest of the batch carries on.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        state_machine: WakeUpCallStateMachine,
        grace_period: timedelta = timedelta(minutes=5),
        concurrency: int = 4,
    ):
        self.session_factory = session_factory
        self.state_machine = state_machine
        self.grace_period = grace_period
        self.concurrency = max(1, concurrency)

    async def tick(self, now: datetime | None = None) -> TickReport:
        """Sweep stale calls, then initiate due ones."""
        now = now or self.state_machine.clock()
        report = TickReport(ran_at=now)

        with logfire.span("scheduler_tick"):
            stale_ids = await self.find_stale_calls(now)
            await self._process(stale_ids, self.state_machine.miss, report.missed, report)

            due_ids = await self.find_due_calls(now)
            await self._process(due_ids, self.state_machine.initiate, report.initiated, report)

        if report.initiated or report.missed or report.failed:
            logger.info(
                f"Scheduler tick: {len(report.initiated)} initiated, "
                f"{len(report.missed)} missed, {len(report.failed)} failed"
            )
        return report

    async def find_due_calls(self, now: datetime) -> list[UUID]:
        """Active pending calls past their scheduled time and snoozed calls past their snooze."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WakeUpCall.id)
                .where(
                    WakeUpCall.is_active.is_(True),
                    or_(
                        and_(
                            WakeUpCall.status == CallStatus.PENDING.value,
                            WakeUpCall.scheduled_time <= now,
                        ),
                        and_(
                            WakeUpCall.status == CallStatus.SNOOZED.value,
                            WakeUpCall.actual_time <= now,
                        ),
                    ),
                )
                .order_by(WakeUpCall.scheduled_time)
            )
            return list(result.scalars().all())

    async def find_stale_calls(self, now: datetime) -> list[UUID]:
        """Calls left initiated or snoozed longer than the grace period."""
        cutoff = now - self.grace_period
        async with self.session_factory() as session:
            result = await session.execute(
                select(WakeUpCall.id).where(
                    WakeUpCall.status.in_([CallStatus.INITIATED.value, CallStatus.SNOOZED.value]),
                    WakeUpCall.actual_time <= cutoff,
                )
            )
            return list(result.scalars().all())

    async def _process(
        self,
        wakeup_call_ids: list[UUID],
        transition: Callable[[UUID], Awaitable[object]],
        succeeded: list[UUID],
        report: TickReport,
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(wakeup_call_id: UUID) -> None:
            async with semaphore:
                try:
                    await transition(wakeup_call_id)
                except (InvalidTransitionError, NotFoundError) as e:
                    # Another handler got there first, or the call was deleted
                    logger.warning(f"Skipped wake-up call {wakeup_call_id}: {e.message}")
                    report.failed.append((wakeup_call_id, e.message))
                except TransportError as e:
                    logger.error(f"Transport failed for wake-up call {wakeup_call_id}: {e.message}")
                    logfire.error("wakeup_call_transport_error", wakeup_call_id=str(wakeup_call_id), error=e.message)
                    report.failed.append((wakeup_call_id, e.message))
                except Exception as e:
                    logger.exception(f"Error processing wake-up call {wakeup_call_id}: {e}")
                    logfire.error("wakeup_call_processing_error", wakeup_call_id=str(wakeup_call_id), error=str(e))
                    report.failed.append((wakeup_call_id, str(e)))
                else:
                    succeeded.append(wakeup_call_id)

        await asyncio.gather(*(run(wakeup_call_id) for wakeup_call_id in wakeup_call_ids))
