from datetime import timedelta

import pytest

from conftest import START, run
from rally.models import CallLogStatus
from rally.services.poller import SchedulingPoller


@pytest.fixture()
def poller(session_factory, machine) -> SchedulingPoller:
    return SchedulingPoller(session_factory, machine, grace_period=timedelta(minutes=5), concurrency=1)


def test_tick_initiates_only_due_calls(seed, poller, transport):
    async def scenario():
        user = await seed.user()
        ids = {
            "due": await seed.call(user, scheduled_time=START - timedelta(minutes=1)),
            "due_now": await seed.call(user, scheduled_time=START),
            "future": await seed.call(user, scheduled_time=START + timedelta(hours=1)),
            "inactive": await seed.call(user, is_active=False),
            "snooze_elapsed": await seed.call(user, status="snoozed", actual_time=START - timedelta(minutes=1)),
            "snooze_running": await seed.call(user, status="snoozed", actual_time=START + timedelta(minutes=3)),
            "completed": await seed.call(user, status="completed", actual_time=START - timedelta(days=1)),
        }
        report = await poller.tick()
        return ids, report

    ids, report = run(scenario())

    assert set(report.initiated) == {ids["due"], ids["due_now"], ids["snooze_elapsed"]}
    assert report.missed == []
    assert report.failed == []
    assert report.ran_at == START
    assert {placed[0] for placed in transport.placed} == set(report.initiated)


def test_tick_with_nothing_due(seed, poller, transport):
    async def scenario():
        user = await seed.user()
        await seed.call(user, scheduled_time=START + timedelta(minutes=1))
        return await poller.tick()

    report = run(scenario())

    assert report.initiated == []
    assert transport.placed == []


def test_one_failing_call_does_not_block_the_batch(seed, poller, transport):
    transport.unreachable.add("+15550000000")

    async def scenario():
        user = await seed.user()
        broken = await seed.call(user, phone_number="+15550000000")
        healthy = await seed.call(user, scheduled_time=START + timedelta(seconds=1))
        report = await poller.tick(START + timedelta(seconds=1))
        return broken, healthy, report, await seed.call_logs(broken)

    broken, healthy, report, broken_logs = run(scenario())

    assert report.initiated == [healthy]
    assert [call_id for call_id, _ in report.failed] == [broken]
    assert "Cannot reach" in report.failed[0][1]
    assert [log.status for log in broken_logs] == [CallLogStatus.FAILED.value]


def test_repeated_ticks_do_not_redial(seed, poller, transport):
    async def scenario():
        user = await seed.user()
        await seed.call(user)
        await poller.tick()
        return await poller.tick()

    second = run(scenario())

    assert second.initiated == []
    assert len(transport.placed) == 1


def test_tick_sweeps_stale_calls_to_missed(seed, poller):
    async def scenario():
        user = await seed.user()
        stale = await seed.call(user, status="initiated", actual_time=START - timedelta(minutes=10))
        stale_snooze = await seed.call(user, status="snoozed", actual_time=START - timedelta(minutes=6))
        ringing = await seed.call(user, status="initiated", actual_time=START - timedelta(minutes=1))
        report = await poller.tick()
        return (stale, stale_snooze, ringing), report, [
            await seed.get_call(call_id) for call_id in (stale, stale_snooze, ringing)
        ]

    (stale, stale_snooze, ringing), report, calls = run(scenario())

    assert set(report.missed) == {stale, stale_snooze}
    assert report.initiated == []
    assert [call.status for call in calls] == ["missed", "missed", "initiated"]


def test_swept_recurring_call_is_rearmed_not_redialed(seed, poller, transport):
    async def scenario():
        user = await seed.user()
        call_id = await seed.call(
            user,
            status="initiated",
            actual_time=START - timedelta(minutes=10),
            rule={"frequency": "DAILY"},
        )
        report = await poller.tick()
        return call_id, report, await seed.get_call(call_id)

    call_id, report, call = run(scenario())

    assert report.missed == [call_id]
    assert report.initiated == []
    assert call.status == "pending"
    assert call.scheduled_time == START + timedelta(days=1)
    assert transport.placed == []
