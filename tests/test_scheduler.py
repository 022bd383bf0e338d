"""Scheduler and clock tests."""

import asyncio
from datetime import timedelta

import pytest

from safetrails.core.clock import ManualClock
from safetrails.jobs.scheduler import AsyncioScheduler, ManualScheduler


def test_manual_scheduler_fires_in_time_order(clock):
    scheduler = ManualScheduler(clock)
    seen = []
    scheduler.register("fast", timedelta(minutes=10), lambda: seen.append(("fast", clock.now())))
    scheduler.register("slow", timedelta(minutes=25), lambda: seen.append(("slow", clock.now())))
    start = clock.now()

    fired = scheduler.advance(timedelta(minutes=30))

    assert fired == ["fast", "fast", "slow", "fast"]
    assert [at - start for _, at in seen] == [
        timedelta(minutes=10),
        timedelta(minutes=20),
        timedelta(minutes=25),
        timedelta(minutes=30),
    ]
    assert clock.now() == start + timedelta(minutes=30)


def test_registration_order_breaks_ties(clock):
    scheduler = ManualScheduler(clock)
    scheduler.register("b", timedelta(hours=1), lambda: None)
    scheduler.register("a", timedelta(hours=1), lambda: None)
    assert scheduler.advance(timedelta(hours=1)) == ["b", "a"]


def test_nothing_fires_before_first_interval(clock):
    scheduler = ManualScheduler(clock)
    scheduler.register("hourly", timedelta(hours=1), lambda: None)
    assert scheduler.advance(timedelta(minutes=59)) == []
    assert scheduler.advance(timedelta(minutes=1)) == ["hourly"]


def test_failing_callback_is_recorded_and_keeps_schedule(clock):
    scheduler = ManualScheduler(clock)

    def explode():
        raise RuntimeError("kaboom")

    scheduler.register("bad", timedelta(minutes=5), explode)

    assert scheduler.advance(timedelta(minutes=10)) == ["bad", "bad"]
    [task] = scheduler.describe()
    assert task["runs"] == 2
    assert task["last_error"] == "RuntimeError: kaboom"


def test_interval_must_be_positive(clock):
    with pytest.raises(ValueError):
        ManualScheduler(clock).register("never", timedelta(0), lambda: None)


def test_manual_clock_does_not_move_backwards():
    clock = ManualClock()
    with pytest.raises(ValueError):
        clock.advance(timedelta(seconds=-1))


def test_asyncio_scheduler_runs_jobs_until_stopped():
    calls = []
    scheduler = AsyncioScheduler()
    scheduler.register("tick", timedelta(milliseconds=10), lambda: calls.append(1))

    async def run():
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.2)
        await scheduler.stop()

    asyncio.run(run())

    assert not scheduler.running
    assert len(calls) >= 1
