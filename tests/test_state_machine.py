import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from conftest import START, run
from rally.errors import InvalidTransitionError, NotFoundError, TransportError, WakeUpValidationError
from rally.models import CallLogStatus, ScheduleKind
from rally.services.state_machine import SnoozeResult


# ==================== INITIATE ====================


def test_initiate_places_call_and_logs_attempt(seed, machine, transport):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user)
        result = await machine.initiate(call_id)
        return call_id, result, await seed.get_call(call_id), await seed.call_logs(call_id)

    call_id, result, call, logs = run(scenario())

    assert call.status == "initiated"
    assert call.actual_time == START
    assert result.call_sid is not None
    assert "Good morning! Time to get up." in result.markup
    assert transport.placed == [(call_id, "+15551234567", result.markup)]
    assert [(log.call_sid, log.status) for log in logs] == [(result.call_sid, CallLogStatus.QUEUED.value)]


def test_initiate_dials_the_call_destination(seed, machine, transport):
    async def scenario():
        user = await seed.user(phone_number="+15550000001")
        call_id = await seed.call(user, phone_number="+15550000002")
        await machine.initiate(call_id)

    run(scenario())

    assert transport.placed[0][1] == "+15550000002"


def test_initiate_transport_failure_keeps_call_initiated(seed, machine, transport):
    transport.unreachable.add("+15551234567")

    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user)
        with pytest.raises(TransportError):
            await machine.initiate(call_id)
        return await seed.get_call(call_id), await seed.call_logs(call_id)

    call, logs = run(scenario())

    assert call.status == "initiated"
    assert len(logs) == 1
    assert logs[0].status == CallLogStatus.FAILED.value
    assert logs[0].call_sid is None
    assert "Cannot reach" in logs[0].error


def test_initiate_snoozed_call_after_snooze_elapsed(seed, machine, clock):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status="snoozed", actual_time=START + timedelta(minutes=5))
        clock.advance(minutes=5)
        await machine.initiate(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.status == "initiated"
    assert call.actual_time == START + timedelta(minutes=5)


def test_initiate_snoozed_call_too_early(seed, machine, transport):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status="snoozed", actual_time=START + timedelta(minutes=5))
        with pytest.raises(InvalidTransitionError):
            await machine.initiate(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.status == "snoozed"
    assert transport.placed == []


@pytest.mark.parametrize("status", ["initiated", "completed", "missed"])
def test_initiate_rejects_other_states(seed, machine, status):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status=status, actual_time=START)
        with pytest.raises(InvalidTransitionError) as excinfo:
            await machine.initiate(call_id)
        return excinfo.value, await seed.get_call(call_id)

    error, call = run(scenario())

    assert error.action == "initiate"
    assert call.status == status


def test_initiate_rejects_inactive_call(seed, machine, transport):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, is_active=False)
        with pytest.raises(InvalidTransitionError):
            await machine.initiate(call_id)

    run(scenario())

    assert transport.placed == []


def test_unknown_call_is_not_found(machine):
    async def scenario():
        for transition in (machine.initiate, machine.complete, machine.miss, machine.answer):
            with pytest.raises(NotFoundError):
                await transition(uuid4())
        with pytest.raises(NotFoundError):
            await machine.snooze(uuid4(), "five")

    run(scenario())


def test_answer_initiates_without_dialing(seed, machine, transport):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user)
        markup = await machine.answer(call_id)
        return markup, await seed.get_call(call_id)

    markup, call = run(scenario())

    assert call.status == "initiated"
    assert "Good morning! Time to get up." in markup
    assert transport.placed == []


def test_answer_rerenders_prompt_for_ringing_call(seed, machine):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user)
        await machine.initiate(call_id)
        markup = await machine.answer(call_id)
        return markup, await seed.get_call(call_id)

    markup, call = run(scenario())

    assert call.status == "initiated"
    assert "snooze" in markup


def test_concurrent_answers_both_get_the_prompt(seed, machine, transport):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user)
        results = await asyncio.gather(
            *(machine.answer(call_id) for _ in range(3)),
            return_exceptions=True,
        )
        return results, await seed.get_call(call_id)

    results, call = run(scenario())

    assert not [r for r in results if isinstance(r, Exception)]
    assert all("Good morning! Time to get up." in markup for markup in results)
    assert call.status == "initiated"
    assert transport.placed == []


# ==================== SNOOZE ====================


def test_snooze_recognized_duration(seed, machine, clock):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status="initiated", actual_time=START)
        outcome = await machine.snooze(call_id, "ten minutes please")
        return outcome, await seed.get_call(call_id), await seed.snooze_count(call_id)

    outcome, call, snoozes = run(scenario())

    assert outcome.success
    assert outcome.result == SnoozeResult.SNOOZED
    assert outcome.minutes == 10
    assert not outcome.used_default
    assert "call you back in 10 minutes" in outcome.markup
    assert call.status == "snoozed"
    assert call.actual_time == START + timedelta(minutes=10)
    assert snoozes == 1


def test_snooze_falls_back_to_default_duration(seed, machine):
    async def scenario():
        user = await seed.user(default_snooze_duration=7)
        call_id = await seed.call(user, status="initiated", actual_time=START)
        outcome = await machine.snooze(call_id, "I don't know")
        return outcome, await seed.get_call(call_id)

    outcome, call = run(scenario())

    assert outcome.success
    assert outcome.used_default
    assert outcome.minutes == 7
    assert "default 7 minutes" in outcome.markup
    assert call.actual_time == START + timedelta(minutes=7)


def test_snooze_limit_reached(seed, machine):
    async def scenario():
        user = await seed.user(max_snooze_count=5)
        call_id = await seed.call(user, status="initiated", actual_time=START, snoozes=5)
        outcome = await machine.snooze(call_id, "ten minutes please")
        return outcome, await seed.get_call(call_id), await seed.snooze_count(call_id)

    outcome, call, snoozes = run(scenario())

    assert not outcome.success
    assert outcome.result == SnoozeResult.LIMIT_REACHED
    assert "Maximum snooze limit" in outcome.markup
    assert call.status == "initiated"
    assert snoozes == 5


def test_snooze_disabled(seed, machine):
    async def scenario():
        user = await seed.user(allow_snooze=False)
        call_id = await seed.call(user, status="initiated", actual_time=START)
        outcome = await machine.snooze(call_id, "five")
        return outcome, await seed.get_call(call_id), await seed.snooze_count(call_id)

    outcome, call, snoozes = run(scenario())

    assert not outcome.success
    assert outcome.result == SnoozeResult.DISABLED
    assert call.status == "initiated"
    assert snoozes == 0


def test_snooze_rejects_non_positive_default(seed, machine):
    async def scenario():
        user = await seed.user(default_snooze_duration=0)
        call_id = await seed.call(user, status="initiated", actual_time=START)
        with pytest.raises(WakeUpValidationError):
            await machine.snooze(call_id, "")
        return await seed.get_call(call_id)

    assert run(scenario()).status == "initiated"


@pytest.mark.parametrize("status", ["pending", "snoozed", "completed", "missed"])
def test_snooze_requires_ringing_call(seed, machine, status):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status=status, actual_time=START)
        with pytest.raises(InvalidTransitionError):
            await machine.snooze(call_id, "five")
        return await seed.snooze_count(call_id)

    assert run(scenario()) == 0


def test_concurrent_snoozes_apply_once(seed, machine):
    async def scenario():
        user = await seed.user(max_snooze_count=1)
        call_id = await seed.call(user, status="initiated", actual_time=START)
        results = await asyncio.gather(
            *(machine.snooze(call_id, "five") for _ in range(5)),
            return_exceptions=True,
        )
        return results, await seed.snooze_count(call_id)

    results, snoozes = run(scenario())

    succeeded = [r for r in results if not isinstance(r, Exception) and r.success]
    rejected = [r for r in results if isinstance(r, InvalidTransitionError)]
    assert len(succeeded) == 1
    assert len(rejected) == 4
    assert snoozes == 1


# ==================== COMPLETE / MISS ====================


def test_complete_one_shot_call(seed, machine):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status="initiated", actual_time=START)
        await machine.complete(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.status == "completed"
    assert call.is_active is True
    assert call.schedule_kind == ScheduleKind.ONE_SHOT


@pytest.mark.parametrize("status", ["pending", "snoozed", "completed", "missed"])
def test_complete_requires_ringing_call(seed, machine, status):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status=status, actual_time=START)
        with pytest.raises(InvalidTransitionError):
            await machine.complete(call_id)

    run(scenario())


def test_complete_rearms_daily_call(seed, machine, clock):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, rule={"frequency": "DAILY"})
        await machine.initiate(call_id)
        clock.advance(minutes=2)
        await machine.complete(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.status == "pending"
    assert call.is_active
    assert call.scheduled_time == START + timedelta(days=1)
    assert call.schedule_kind == ScheduleKind.RECURRING


def test_complete_rearms_weekly_call_on_next_listed_day(seed, machine):
    async def scenario():
        user = await seed.user(timezone="America/New_York")
        # Monday, Wednesday and Friday
        call_id = await seed.call(
            user, status="initiated", actual_time=START, rule={"frequency": "WEEKLY", "by_day": [1, 3, 5]}
        )
        await machine.complete(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.status == "pending"
    assert call.scheduled_time == START + timedelta(days=2)


def test_miss_rearms_and_clears_snoozes(seed, machine, clock):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(
            user,
            status="snoozed",
            actual_time=START + timedelta(minutes=10),
            rule={"frequency": "DAILY"},
            snoozes=2,
        )
        clock.advance(minutes=20)
        await machine.miss(call_id)
        return await seed.get_call(call_id), await seed.snooze_count(call_id)

    call, snoozes = run(scenario())

    assert call.status == "pending"
    assert call.scheduled_time == START + timedelta(days=1)
    assert snoozes == 0


def test_late_miss_skips_elapsed_occurrences(seed, machine, clock):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status="initiated", actual_time=START, rule={"frequency": "DAILY"})
        clock.advance(days=3, hours=1)
        await machine.miss(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.scheduled_time == START + timedelta(days=4)


def test_miss_one_shot_call(seed, machine):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user, status="initiated", actual_time=START, snoozes=1)
        await machine.miss(call_id)
        return await seed.get_call(call_id), await seed.snooze_count(call_id)

    call, snoozes = run(scenario())

    assert call.status == "missed"
    assert snoozes == 1


def test_miss_requires_ringing_or_snoozed_call(seed, machine):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(user)
        with pytest.raises(InvalidTransitionError):
            await machine.miss(call_id)

    run(scenario())


def test_exhausted_series_deactivates_call(seed, machine):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(
            user,
            status="initiated",
            actual_time=START,
            rule={"frequency": "DAILY", "end_date": START + timedelta(hours=12)},
        )
        await machine.complete(call_id)
        return await seed.get_call(call_id)

    call = run(scenario())

    assert call.status == "completed"
    assert call.is_active is False
    assert call.recurrence_rule.exhausted_at == START
    assert call.schedule_kind == ScheduleKind.RECURRING_EXHAUSTED


def test_snooze_count_is_per_occurrence(seed, machine, clock):
    async def scenario():
        user = await seed.user(max_snooze_count=1)
        call_id = await seed.call(user, rule={"frequency": "DAILY"})

        await machine.initiate(call_id)
        first = await machine.snooze(call_id, "five")
        clock.advance(minutes=5)
        await machine.initiate(call_id)
        second = await machine.snooze(call_id, "five")
        await machine.complete(call_id)

        clock.now = START + timedelta(days=1)
        await machine.initiate(call_id)
        third = await machine.snooze(call_id, "five")
        return first, second, third

    first, second, third = run(scenario())

    assert first.result == SnoozeResult.SNOOZED
    assert second.result == SnoozeResult.LIMIT_REACHED
    assert third.result == SnoozeResult.SNOOZED
