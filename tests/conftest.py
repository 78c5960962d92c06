import asyncio
import os
from datetime import datetime, timedelta, timezone
from uuid import UUID

import logfire
import pytest

# Point the application engine at a throwaway database before rally is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TWILIO_AUTH_TOKEN"] = ""
os.environ["LOGFIRE_TOKEN"] = ""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import selectinload
from sqlalchemy.pool import NullPool

from rally.database import Base
from rally.errors import TransportError
from rally.models import CallLog, RecurrenceRule, Snooze, User, UserPreferences, WakeUpCall
from rally.services.state_machine import WakeUpCallStateMachine
from rally.telephony.base import TelephonyTransport

logfire.configure(send_to_logfire=False, console=False)


# Monday 6 January 2025, 07:00 UTC
START = datetime(2025, 1, 6, 7, 0, tzinfo=timezone.utc)


def run(coro):
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def __call__(self) -> datetime:
        return self.now


class FakeTransport(TelephonyTransport):
    """Records calls instead of dialing; numbers in ``unreachable`` fail."""

    def __init__(self):
        self.placed: list[tuple[UUID, str, str]] = []
        self.unreachable: set[str] = set()

    def initial_prompt(self, wakeup_call_id, message, invitation):
        return f"<Response><Say>{message}</Say><Gather><Say>{invitation}</Say></Gather></Response>"

    def prompt(self, message):
        return f"<Response><Say>{message}</Say><Hangup/></Response>"

    async def place_call(self, wakeup_call_id, to, markup):
        if to in self.unreachable:
            raise TransportError(f"Cannot reach {to}")
        self.placed.append((wakeup_call_id, to, markup))
        return f"CA{len(self.placed):032d}"


class Seeder:
    """Inserts and reads rows directly, bypassing the services under test."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def user(self, external_id="user_1", phone_number="+15551234567", **preferences) -> User:
        async with self.session_factory() as session, session.begin():
            user = User(external_id=external_id, name="Sam", phone_number=phone_number)
            user.preferences = UserPreferences(**preferences)
            session.add(user)
        return user

    async def call(
        self,
        user: User,
        status="pending",
        scheduled_time=START,
        actual_time=None,
        is_active=True,
        phone_number="+15551234567",
        message="Good morning! Time to get up.",
        rule: dict | None = None,
        snoozes: int = 0,
    ) -> UUID:
        async with self.session_factory() as session, session.begin():
            call = WakeUpCall(
                user_id=user.id,
                phone_number=phone_number,
                message=message,
                scheduled_time=scheduled_time,
                actual_time=actual_time,
                status=status,
                is_active=is_active,
            )
            if rule is not None:
                rule = {"start_date": scheduled_time, "by_day": [], "exceptions": [], **rule}
                call.recurrence_rule = RecurrenceRule(**rule)
            session.add(call)
            await session.flush()
            for i in range(snoozes):
                snoozed_at = scheduled_time + timedelta(minutes=10 * i)
                session.add(
                    Snooze(
                        wakeup_call_id=call.id,
                        snoozed_at=snoozed_at,
                        snooze_until=snoozed_at + timedelta(minutes=5),
                    )
                )
            return call.id

    async def get_call(self, wakeup_call_id: UUID) -> WakeUpCall | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(WakeUpCall)
                .where(WakeUpCall.id == wakeup_call_id)
                .options(selectinload(WakeUpCall.recurrence_rule))
            )
            return result.scalar_one_or_none()

    async def snooze_count(self, wakeup_call_id: UUID) -> int:
        async with self.session_factory() as session:
            return await session.scalar(
                select(func.count(Snooze.id)).where(Snooze.wakeup_call_id == wakeup_call_id)
            )

    async def call_logs(self, wakeup_call_id: UUID) -> list[CallLog]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CallLog).where(CallLog.wakeup_call_id == wakeup_call_id)
            )
            return list(result.scalars().all())


async def _create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    run(_create_schema(engine))
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    run(engine.dispose())


@pytest.fixture()
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def machine(session_factory, transport, clock) -> WakeUpCallStateMachine:
    return WakeUpCallStateMachine(session_factory, transport, clock=clock)
