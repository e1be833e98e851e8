"""Periodic job scheduling.

:class:`AsyncioScheduler` runs jobs on the event loop with real sleeps.
:class:`ManualScheduler` runs nothing on its own: callers advance a
:class:`~secops.utils.clock.ManualClock` and then ``await run_due()``.
Both expose the same ``every`` / ``shutdown`` surface so services can be
handed either one.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from secops.utils.clock import Clock
from secops.utils.logger import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[object]]


class ScheduledJob:
    """Handle returned by :meth:`Scheduler.every`."""

    def __init__(self, name: str, interval: float, job: Job) -> None:
        self.name = name
        self.interval = interval
        self.job = job
        self.cancelled = False
        self.next_due: float = 0.0
        self._task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run_once(self) -> None:
        try:
            await self.job()
        except Exception:
            logger.exception("scheduled_job_failed", job=self.name)


class Scheduler(ABC):
    @abstractmethod
    def every(self, interval: float, job: Job, name: str = "job") -> ScheduledJob:
        """Run *job* every *interval* seconds until cancelled."""

    @abstractmethod
    async def shutdown(self) -> None:
        """Cancel every job."""


class AsyncioScheduler(Scheduler):
    """Runs each job in its own task, sleeping *interval* seconds between runs.

    Must be used from inside a running event loop.
    """

    def __init__(self) -> None:
        self._jobs: List[ScheduledJob] = []

    def every(self, interval: float, job: Job, name: str = "job") -> ScheduledJob:
        if interval <= 0:
            raise ValueError("interval must be positive")
        scheduled = ScheduledJob(name, interval, job)
        scheduled._task = asyncio.get_running_loop().create_task(self._loop(scheduled))
        self._jobs.append(scheduled)
        logger.info("job_scheduled", job=name, interval_seconds=interval)
        return scheduled

    async def _loop(self, scheduled: ScheduledJob) -> None:
        while not scheduled.cancelled:
            await asyncio.sleep(scheduled.interval)
            await scheduled.run_once()

    async def shutdown(self) -> None:
        tasks = []
        for scheduled in self._jobs:
            scheduled.cancel()
            if scheduled._task is not None:
                tasks.append(scheduled._task)
        await asyncio.gather(*tasks, return_exceptions=True)
        self._jobs.clear()


class ManualScheduler(Scheduler):
    """Virtual-time scheduler for tests and offline simulations."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._jobs: List[ScheduledJob] = []

    @property
    def jobs(self) -> List[ScheduledJob]:
        return [j for j in self._jobs if not j.cancelled]

    def every(self, interval: float, job: Job, name: str = "job") -> ScheduledJob:
        if interval <= 0:
            raise ValueError("interval must be positive")
        scheduled = ScheduledJob(name, interval, job)
        scheduled.next_due = self._clock.time() + interval
        self._jobs.append(scheduled)
        return scheduled

    async def run_due(self) -> int:
        """Run every job whose due time has passed; return how many ran.

        A job that fell several intervals behind runs once and is
        rescheduled relative to the current time.
        """
        ran = 0
        now = self._clock.time()
        for scheduled in self.jobs:
            if scheduled.next_due <= now:
                await scheduled.run_once()
                scheduled.next_due = now + scheduled.interval
                ran += 1
        return ran

    async def shutdown(self) -> None:
        for scheduled in self._jobs:
            scheduled.cancel()
        self._jobs.clear()
