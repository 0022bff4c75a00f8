"""
In-process job scheduler.

Each job is an asyncio task that sleeps until its trigger's next wall-clock
time in the schedule timezone, runs the job, and loops. A failing run is
logged and the schedule continues.

    every :00 and :30  -> news refresh
    05:55              -> pre-send news refresh
    06:00              -> daily digest
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from rsmnews.config import (
    DAILY_SEND_TIME,
    DIGEST_STARTUP_DELAY_SECONDS,
    PRE_SEND_REFRESH_TIME,
    REFRESH_INTERVAL_MINUTES,
    SCHEDULE_TIMEZONE,
    send_on_startup,
)
from rsmnews.observability.logging import get_logger
from rsmnews.observability.telemetry import counter

logger = get_logger(__name__)

JobFunc = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class IntervalTrigger:
    """Fires every `minutes`, aligned to local midnight (30 -> :00 and :30)."""

    minutes: int

    def next_run(self, after: datetime) -> datetime:
        midnight = after.replace(hour=0, minute=0, second=0, microsecond=0)
        elapsed = (after.hour * 60) + after.minute
        slot = (elapsed // self.minutes + 1) * self.minutes
        return midnight + timedelta(minutes=slot)


@dataclass(frozen=True)
class DailyTrigger:
    """Fires once a day at hour:minute local time."""

    hour: int
    minute: int = 0

    def next_run(self, after: datetime) -> datetime:
        candidate = after.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= after:
            candidate += timedelta(days=1)
        return candidate


Trigger = IntervalTrigger | DailyTrigger


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    trigger: Trigger
    func: JobFunc


class Scheduler:
    def __init__(
        self,
        timezone: str = SCHEDULE_TIMEZONE,
        clock: Callable[[], datetime] | None = None,
    ):
        self.tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._jobs: list[ScheduledJob] = []
        self._tasks: list[asyncio.Task] = []

    @property
    def jobs(self) -> list[ScheduledJob]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def add_job(self, name: str, trigger: Trigger, func: JobFunc) -> None:
        self._jobs.append(ScheduledJob(name, trigger, func))

    def start(self) -> None:
        """Start one task per job. Must be called from a running event loop."""
        for job in self._jobs:
            self._tasks.append(asyncio.create_task(self._loop(job), name=f"job:{job.name}"))
        logger.info("Scheduler started with %d jobs (%s)", len(self._jobs), self.tz.key)

    def run_once(self, name: str, func: JobFunc, delay: float = 0.0) -> asyncio.Task:
        """Run func once in the background after `delay` seconds."""
        task = asyncio.create_task(self._once(name, func, delay), name=f"once:{name}")
        self._tasks.append(task)
        return task

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Scheduler stopped")

    def seconds_until(self, when: datetime) -> float:
        now = self._clock()
        return max(0.0, (when.astimezone(UTC) - now.astimezone(UTC)).total_seconds())

    async def _loop(self, job: ScheduledJob) -> None:
        last_run: datetime | None = None
        while True:
            # a clock that still reads before the slot just served must not fire it again
            now = self._clock()
            next_run = job.trigger.next_run(now if last_run is None else max(now, last_run))
            logger.debug("Job %s next run at %s", job.name, next_run.isoformat())
            await asyncio.sleep(self.seconds_until(next_run))
            await self._execute(job.name, job.func)
            last_run = next_run

    async def _once(self, name: str, func: JobFunc, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        await self._execute(name, func)

    async def _execute(self, name: str, func: JobFunc) -> None:
        logger.info("Running job %s", name)
        try:
            await func()
        except Exception:
            counter(f"scheduler.{name}.failed")
            logger.exception("Job %s failed", name)
        else:
            counter(f"scheduler.{name}.ok")


def build_scheduler(news_service, digest_sender, timezone: str = SCHEDULE_TIMEZONE) -> Scheduler:
    """Scheduler with the refresh and daily digest jobs registered."""
    scheduler = Scheduler(timezone=timezone)
    scheduler.add_job("refresh", IntervalTrigger(REFRESH_INTERVAL_MINUTES), news_service.refresh)
    scheduler.add_job("pre_send_refresh", DailyTrigger(*PRE_SEND_REFRESH_TIME), news_service.refresh)
    scheduler.add_job("daily_digest", DailyTrigger(*DAILY_SEND_TIME), digest_sender.send_daily_digest)
    return scheduler


async def start_jobs(scheduler: Scheduler, news_service, digest_sender) -> None:
    """
    Start the recurring jobs plus the start-up work.

    A stale or empty cache gets one background refresh; it does not hold back
    the recurring jobs. RSMNEWS_SEND_ON_STARTUP=true also sends the digest
    once, shortly after start-up.
    """
    scheduler.start()

    try:
        stale = await news_service.needs_refresh()
    except Exception:
        logger.exception("Could not read news cache at start-up")
        stale = True

    if stale:
        logger.info("News cache is stale or empty, refreshing in background")
        scheduler.run_once("startup_refresh", news_service.refresh)

    if send_on_startup():
        logger.info("Sending digest in %.0fs (RSMNEWS_SEND_ON_STARTUP)", DIGEST_STARTUP_DELAY_SECONDS)
        scheduler.run_once("startup_digest", digest_sender.send_daily_digest, DIGEST_STARTUP_DELAY_SECONDS)
