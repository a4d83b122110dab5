"""Cron-driven scheduler for harvest sessions.

Fires a job at every tick of a cron schedule. At most one run is in flight:
a tick that arrives while the previous run is still going is skipped, so two
runs never share (or race for) a browser.
"""

import asyncio
from datetime import datetime, tzinfo
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from lib.cron import CronSchedule
from services.harvest.errors import HarvestError


class Scheduler:
    """Process-wide lifecycle object: create once, then start / stop."""

    def __init__(
        self,
        schedule: Union[str, CronSchedule],
        job: Callable[[], Awaitable[Any]],
        timezone: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        # Parse now so a bad expression fails at startup, not at the first tick
        self.schedule = schedule if isinstance(schedule, CronSchedule) else CronSchedule.parse(schedule)
        self.job = job
        self.timezone = timezone
        self._clock = clock or (lambda: datetime.now(self.timezone))
        self._sleep = sleep or asyncio.sleep

        self._stop = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._current_run: Optional[asyncio.Task] = None
        # Last tick fired or skipped; the loop never schedules at or before it again
        self._last_scheduled: Optional[datetime] = None

        self.last_tick: Optional[datetime] = None
        self.runs_started = 0
        self.runs_succeeded = 0
        self.runs_failed = 0
        self.ticks_skipped = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def run_in_flight(self) -> bool:
        return self._current_run is not None and not self._current_run.done()

    def start(self) -> asyncio.Task:
        """Start the timing loop on the running event loop."""
        if self.running:
            raise RuntimeError("Scheduler is already running")
        self._stop.clear()
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(f"Scheduler started: {self.schedule}")
        return self._loop_task

    def stop(self) -> None:
        """Request shutdown. The loop exits after any in-flight run finishes."""
        if not self._stop.is_set():
            logger.info("Shutdown requested, finishing current run...")
        self._stop.set()

    async def wait(self) -> None:
        """Wait until the loop has stopped."""
        if self._loop_task is not None:
            await self._loop_task

    async def run_forever(self) -> None:
        """Start and block until stop() is called."""
        self.start()
        await self.wait()

    async def _run_loop(self) -> None:
        try:
            while not self._stop.is_set():
                now = self._clock()
                # A timer that wakes slightly early must not pick the same tick twice
                base = now if self._last_scheduled is None else max(now, self._last_scheduled)
                tick = self.schedule.next_after(base)
                if await self._wait_until(tick, now):
                    break
                self._last_scheduled = tick
                self._fire(tick)
        finally:
            if self.run_in_flight:
                logger.info("Waiting for in-flight run to finish...")
                await asyncio.wait({self._current_run})
            logger.info(
                f"Scheduler stopped: {self.runs_started} runs "
                f"({self.runs_succeeded} ok, {self.runs_failed} failed), "
                f"{self.ticks_skipped} ticks skipped"
            )

    async def _wait_until(self, tick: datetime, now: datetime) -> bool:
        """Sleep until `tick` or a stop request. Returns True if stopped."""
        delay = max((tick - now).total_seconds(), 0.0)
        sleeper = asyncio.ensure_future(self._sleep(delay))
        stopper = asyncio.ensure_future(self._stop.wait())
        _, pending = await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        return self._stop.is_set()

    def _fire(self, tick: datetime) -> None:
        if self.run_in_flight:
            self.ticks_skipped += 1
            logger.warning(f"Skipping tick {tick:%Y-%m-%d %H:%M:%S}: previous run still in progress")
            return

        self.last_tick = tick
        self.runs_started += 1
        self._current_run = asyncio.create_task(self._execute(tick))

    async def _execute(self, tick: datetime) -> None:
        """Run the job once. Failures are logged and never reach the timing loop."""
        logger.debug(f"Tick {tick:%Y-%m-%d %H:%M:%S}: run #{self.runs_started}")
        try:
            await self.job()
        except HarvestError as e:
            self.runs_failed += 1
            logger.error(f"Run failed ({e.category}): {e}")
        except Exception as e:
            self.runs_failed += 1
            logger.exception(f"Run failed unexpectedly: {e}")
        else:
            self.runs_succeeded += 1
