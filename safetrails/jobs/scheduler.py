"""Periodic triggering for reconciliation jobs.

``AsyncioScheduler`` drives jobs in the running service; ``ManualScheduler``
fires callbacks deterministically as a ``ManualClock`` is advanced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from safetrails.core.clock import Clock, ManualClock, system_clock

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    def register(self, name: str, interval: timedelta, callback: Callable[[], Any]) -> None: ...


@dataclass
class ScheduledTask:
    name: str
    interval: timedelta
    callback: Callable[[], Any]
    next_run_at: datetime
    last_run_at: datetime | None = None
    last_error: str | None = None
    runs: int = 0
    missed_ticks: int = 0

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "interval_seconds": int(self.interval.total_seconds()),
            "next_run_at": self.next_run_at,
            "last_run_at": self.last_run_at,
            "last_error": self.last_error,
            "runs": self.runs,
            "missed_ticks": self.missed_ticks,
        }


def _run_callback(task: ScheduledTask, now: datetime) -> None:
    """Run one tick. A failing job is logged and never takes the host down."""
    task.last_run_at = now
    task.runs += 1
    try:
        task.callback()
        task.last_error = None
    except Exception as exc:
        task.last_error = f"{type(exc).__name__}: {exc}"
        logger.exception("Scheduled job %s failed", task.name)


class ManualScheduler:
    """Fires due callbacks in time order as the clock is advanced."""

    def __init__(self, clock: ManualClock) -> None:
        self._clock = clock
        self._tasks: list[ScheduledTask] = []

    def register(self, name: str, interval: timedelta, callback: Callable[[], Any]) -> None:
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self._tasks.append(
            ScheduledTask(name=name, interval=interval, callback=callback, next_run_at=self._clock.now() + interval)
        )

    def advance(self, delta: timedelta) -> list[str]:
        """Move time forward by ``delta``; returns the names of the jobs that fired, in order."""
        target = self._clock.now() + delta
        fired: list[str] = []
        while True:
            due = [t for t in self._tasks if t.next_run_at <= target]
            if not due:
                break
            # Registration order breaks ties between jobs due at the same instant.
            task = min(due, key=lambda t: t.next_run_at)
            self._clock.set(task.next_run_at)
            _run_callback(task, task.next_run_at)
            task.next_run_at = task.next_run_at + task.interval
            fired.append(task.name)
        self._clock.set(target)
        return fired

    def describe(self) -> list[dict[str, Any]]:
        return [t.describe() for t in self._tasks]


class AsyncioScheduler:
    """One asyncio task per registered job.

    Each tick hands the callback to a worker thread and goes back to sleep,
    so a slow pass never delays the timer; the job's own run-lock skips a
    tick that would overlap it. Ticks missed while the loop was stalled are
    coalesced into the next one.
    """

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._tasks: list[ScheduledTask] = []
        self._loops: list[asyncio.Task] = []
        self._in_flight: set[asyncio.Task] = set()

    def register(self, name: str, interval: timedelta, callback: Callable[[], Any]) -> None:
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self._tasks.append(
            ScheduledTask(name=name, interval=interval, callback=callback, next_run_at=self._clock.now() + interval)
        )

    @property
    def running(self) -> bool:
        return bool(self._loops)

    async def start(self) -> None:
        for task in self._tasks:
            self._loops.append(asyncio.create_task(self._loop(task), name=f"job:{task.name}"))
        logger.info("Scheduler started with %s jobs", len(self._tasks))

    async def stop(self) -> None:
        for handle in self._loops:
            handle.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("Scheduler stopped")

    async def _loop(self, task: ScheduledTask) -> None:
        loop = asyncio.get_running_loop()
        interval = task.interval.total_seconds()
        deadline = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            now = self._clock.now()
            run = asyncio.create_task(asyncio.to_thread(_run_callback, task, now))
            self._in_flight.add(run)
            run.add_done_callback(self._in_flight.discard)

            deadline += interval
            lag = loop.time() - deadline
            if lag >= 0:
                missed = int(lag // interval) + 1
                task.missed_ticks += missed
                deadline += missed * interval
                logger.warning("Scheduled job %s missed %s tick(s)", task.name, missed)
            task.next_run_at = now + timedelta(seconds=max(0.0, deadline - loop.time()))

    def describe(self) -> list[dict[str, Any]]:
        return [t.describe() for t in self._tasks]
