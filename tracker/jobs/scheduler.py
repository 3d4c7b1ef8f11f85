"""
Timer-driven job runner.

Every registered job gets its own asyncio task that sleeps until the next
time its trigger yields, runs the job to completion, and repeats. Each job
holds a lock while it runs, so timer runs and manual runs of the same job
never overlap, while different jobs run concurrently.
A failing run is logged and the loop carries on with the next one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from tracker.models import get_utc_now

logger = logging.getLogger(__name__)

Trigger = Callable[[datetime], datetime]


def every(seconds: float) -> Trigger:
    def next_run(now: datetime) -> datetime:
        return now + timedelta(seconds=seconds)

    return next_run


def hourly(step: int = 1) -> Trigger:
    """Top of the hour, on hours divisible by ``step``."""

    def next_run(now: datetime) -> datetime:
        candidate = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        while candidate.hour % step:
            candidate += timedelta(hours=1)
        return candidate

    return next_run


def daily(hour: int) -> Trigger:
    def next_run(now: datetime) -> datetime:
        candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    return next_run


def weekly(weekday: int, hour: int = 0) -> Trigger:
    """``weekday`` follows datetime.weekday(): Monday is 0, Sunday is 6."""

    def next_run(now: datetime) -> datetime:
        candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
        candidate += timedelta(days=(weekday - now.weekday()) % 7)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    return next_run


@dataclass
class JobRun:
    result: object = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ScheduledJob:
    name: str
    func: Callable[[], Awaitable[object]]
    trigger: Trigger
    description: str = ""
    runs: int = 0
    failures: int = 0
    last_run: datetime | None = None
    next_run: datetime | None = None
    last_error: str | None = None
    task: asyncio.Task | None = field(default=None, repr=False)
    # Held for the whole run; timer and manual runs of one job queue up on it.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class JobScheduler:
    def __init__(self, clock: Callable[[], datetime] = get_utc_now):
        self._clock = clock
        self._jobs: dict[str, ScheduledJob] = {}

    @property
    def running(self) -> bool:
        return any(job.task is not None and not job.task.done() for job in self._jobs.values())

    def add_job(self, name: str, func: Callable[[], Awaitable[object]], trigger: Trigger, description: str = ""):
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")
        self._jobs[name] = ScheduledJob(name=name, func=func, trigger=trigger, description=description)

    def start(self) -> None:
        for job in self._jobs.values():
            if job.task is None or job.task.done():
                job.task = asyncio.create_task(self._run_loop(job), name=f"job:{job.name}")
        logger.info("Scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        tasks = [job.task for job in self._jobs.values() if job.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for job in self._jobs.values():
            job.task = None
        logger.info("Scheduler stopped")

    async def run_once(self, name: str) -> JobRun:
        """Run a job now, waiting for any run of it already in progress."""
        return await self._execute(self._jobs[name])

    def status(self) -> list[dict]:
        return [
            {
                "name": job.name,
                "description": job.description,
                "runs": job.runs,
                "failures": job.failures,
                "running": job.lock.locked(),
                "lastRun": job.last_run.isoformat() if job.last_run else None,
                "nextRun": job.next_run.isoformat() if job.next_run else None,
                "lastError": job.last_error,
            }
            for job in self._jobs.values()
        ]

    async def _run_loop(self, job: ScheduledJob) -> None:
        while True:
            now = self._clock()
            job.next_run = job.trigger(now)
            delay = max((job.next_run - now).total_seconds(), 0)
            await asyncio.sleep(delay)
            await self._execute(job)

    async def _execute(self, job: ScheduledJob) -> JobRun:
        async with job.lock:
            job.last_run = self._clock()
            try:
                result = await job.func()
                job.last_error = None
                return JobRun(result=result)
            except Exception as e:
                job.failures += 1
                job.last_error = str(e)
                logger.exception("Scheduled job %s failed", job.name)
                return JobRun(error=str(e))
            finally:
                job.runs += 1
