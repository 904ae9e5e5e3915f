"""
Background Scheduler

Periodic maintenance jobs for a room session (token refresh, pingable
roster resync, push channel watchdog). Each job has its own timer task,
but every run is executed on the session's SerialTimeline so jobs never
race with each other or with user actions.

A failing run is logged and the schedule carries on with the next tick.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .exceptions import SessionClosedError
from .timeline import SerialTimeline

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    """
    Fixed-rate scheduler feeding a SerialTimeline.

    Attributes:
        run_counts: Number of completed runs per job name
        failure_counts: Number of failed runs per job name
    """

    def __init__(self, timeline: SerialTimeline):
        """
        Initialize the scheduler.

        Args:
            timeline: Timeline every job run is submitted to
        """
        self._timeline = timeline
        self._tasks: List[asyncio.Task] = []
        self.run_counts: Dict[str, int] = {}
        self.failure_counts: Dict[str, int] = {}

    def schedule(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        interval: float,
        initial_delay: Optional[float] = None,
    ) -> None:
        """
        Run a job every `interval` seconds.

        Args:
            name: Job name used in logs and counters
            job: Coroutine function taking no arguments
            interval: Seconds between the start of two runs
            initial_delay: Seconds before the first run (defaults to interval)
        """
        delay = interval if initial_delay is None else initial_delay
        self.run_counts.setdefault(name, 0)
        self.failure_counts.setdefault(name, 0)
        task = asyncio.get_running_loop().create_task(
            self._run_periodically(name, job, interval, delay)
        )
        self._tasks.append(task)
        logger.debug("Scheduled %s every %s seconds", name, interval)

    async def _run_periodically(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        interval: float,
        delay: float,
    ) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + delay
        while True:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            next_run += interval
            try:
                await self._timeline.run(job)
            except SessionClosedError:
                logger.debug("Timeline closed, stopping %s", name)
                return
            except Exception as e:
                self.failure_counts[name] += 1
                logger.error("Scheduled job %s failed: %s", name, e, exc_info=True)
            else:
                self.run_counts[name] += 1

    async def stop(self) -> None:
        """Cancel every timer. A run already on the timeline completes."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
