"""Tests for the cron-driven Scheduler."""

import asyncio
from datetime import datetime, timedelta
from itertools import islice

import pytest

from lib.cron import CronSchedule, CronSyntaxError
from services.harvest.errors import NavigationError
from workflows.scheduler import Scheduler


START = datetime(2024, 3, 1, 12, 0, 1)


class FakeClock:
    """Virtual time: sleeping advances the clock instead of waiting."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        await asyncio.sleep(0)


async def wait_for(predicate, limit: int = 10000):
    """Yield to the event loop until predicate() holds."""
    for _ in range(limit):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never became true")


class TestConstruction:

    def test_invalid_expression_fails_at_startup(self):
        async def job():
            pass

        with pytest.raises(CronSyntaxError):
            Scheduler("*/5 * * *", job)

    def test_accepts_parsed_schedule(self):
        async def job():
            pass

        schedule = CronSchedule.parse("0 * * * * *")
        assert Scheduler(schedule, job).schedule is schedule


class TestTicks:
    """The job runs at every matching tick and at no other time."""

    @pytest.mark.asyncio
    async def test_fires_at_each_tick(self):
        clock = FakeClock(START)
        fired = []

        async def job():
            fired.append(scheduler.last_tick)
            if len(fired) == 6:
                scheduler.stop()

        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        expected = list(islice(scheduler.schedule.iter_ticks(START, START + timedelta(hours=1)), 6))
        assert fired == expected
        assert fired[0] == datetime(2024, 3, 1, 12, 0, 5)
        assert scheduler.runs_started == 6
        assert scheduler.runs_succeeded == 6
        assert scheduler.ticks_skipped == 0

    @pytest.mark.asyncio
    async def test_sparse_schedule(self):
        clock = FakeClock(START)
        fired = []

        async def job():
            fired.append(scheduler.last_tick)
            if len(fired) == 3:
                scheduler.stop()

        scheduler = Scheduler("0 30 9 * * mon", job, clock=clock, sleep=clock.sleep)
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert fired == [
            datetime(2024, 3, 4, 9, 30),
            datetime(2024, 3, 11, 9, 30),
            datetime(2024, 3, 18, 9, 30),
        ]

    @pytest.mark.asyncio
    async def test_start_twice_raises(self):
        async def job():
            pass

        clock = FakeClock(START)
        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        scheduler.start()
        with pytest.raises(RuntimeError):
            scheduler.start()
        scheduler.stop()
        await asyncio.wait_for(scheduler.wait(), timeout=5)


class EarlyClock(FakeClock):
    """Timer that wakes 1 ms before the requested delay has passed."""

    async def sleep(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds) - timedelta(milliseconds=1)
        await asyncio.sleep(0)


class TestEarlyWakeup:
    """Waking just before a tick must not fire that tick twice."""

    @pytest.mark.asyncio
    async def test_each_tick_fires_once(self):
        clock = EarlyClock(START)
        fired = []

        async def job():
            fired.append(scheduler.last_tick)
            if len(fired) == 3:
                scheduler.stop()

        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert fired == [
            datetime(2024, 3, 1, 12, 0, 5),
            datetime(2024, 3, 1, 12, 0, 10),
            datetime(2024, 3, 1, 12, 0, 15),
        ]
        assert scheduler.ticks_skipped == 0

    @pytest.mark.asyncio
    async def test_fast_failing_runs_fire_once_per_tick(self):
        clock = EarlyClock(START)
        fired = []

        async def job():
            fired.append(scheduler.last_tick)
            if len(fired) == 4:
                scheduler.stop()
            raise NavigationError("unreachable")

        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert len(set(fired)) == len(fired) == 4
        assert scheduler.runs_failed == 4


class TestOverlap:
    """A tick that arrives while a run is in progress is skipped."""

    @pytest.mark.asyncio
    async def test_skips_ticks_while_running(self):
        clock = FakeClock(START)
        release = asyncio.Event()
        started = []
        active = 0
        max_active = 0

        async def job():
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            started.append(scheduler.last_tick)
            try:
                if len(started) == 1:
                    await release.wait()
            finally:
                active -= 1

        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        scheduler.start()

        await wait_for(lambda: scheduler.ticks_skipped >= 3)
        assert scheduler.runs_started == 1

        release.set()
        await wait_for(lambda: len(started) >= 2)
        scheduler.stop()
        await asyncio.wait_for(scheduler.wait(), timeout=5)

        assert max_active == 1
        assert started[1] - started[0] >= timedelta(seconds=20)

    @pytest.mark.asyncio
    async def test_stop_waits_for_in_flight_run(self):
        clock = FakeClock(START)
        release = asyncio.Event()
        finished = []

        async def job():
            await release.wait()
            finished.append(True)

        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        scheduler.start()
        await wait_for(lambda: scheduler.run_in_flight)

        scheduler.stop()
        for _ in range(10):
            await asyncio.sleep(0)
        assert scheduler.running
        assert not finished

        release.set()
        await asyncio.wait_for(scheduler.wait(), timeout=5)
        assert finished == [True]
        assert not scheduler.running


class TestFailures:
    """A failed run is logged and the next tick still fires."""

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_timeline(self):
        clock = FakeClock(START)
        calls = []

        async def job():
            calls.append(scheduler.last_tick)
            if len(calls) == 1:
                raise NavigationError("timeout")
            if len(calls) == 2:
                raise RuntimeError("boom")
            scheduler.stop()

        scheduler = Scheduler("*/5 * * * * *", job, clock=clock, sleep=clock.sleep)
        await asyncio.wait_for(scheduler.run_forever(), timeout=5)

        assert len(calls) == 3
        assert scheduler.runs_failed == 2
        assert scheduler.runs_succeeded == 1
