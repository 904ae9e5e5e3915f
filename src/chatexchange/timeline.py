"""
Serialized Action Timeline

A single asyncio worker that runs submitted jobs one at a time, in
submission order. Mutating room actions and background maintenance jobs
share one timeline, so a token refresh can never interleave with an
in-flight action.

Usage:
    timeline = SerialTimeline("room-1")
    message_id = await timeline.run(post_message)
    await timeline.shutdown()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

from .exceptions import SessionClosedError

logger = logging.getLogger(__name__)

Job = Callable[..., Awaitable[Any]]


def _mark_retrieved(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class SerialTimeline:
    """
    Runs coroutine jobs sequentially on one worker task.

    Attributes:
        name: Label used in log messages
    """

    def __init__(self, name: str = "timeline"):
        self.name = name
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        """True once shutdown has been requested."""
        return self._closed

    def _ensure_started(self) -> asyncio.Queue:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._worker = asyncio.get_running_loop().create_task(
                self._work(self._queue)
            )
        return self._queue

    def submit(self, job: Job, *args: Any) -> asyncio.Future:
        """
        Queue a job and return a future for its result.

        Args:
            job: Coroutine function to run
            *args: Arguments passed to the job

        Returns:
            Future resolved with the job's result or exception

        Raises:
            SessionClosedError: If the timeline has been shut down
        """
        if self._closed:
            raise SessionClosedError(f"{self.name} is closed")
        queue = self._ensure_started()
        future = asyncio.get_running_loop().create_future()
        # Failures are already logged by the worker
        future.add_done_callback(_mark_retrieved)
        queue.put_nowait((job, args, future))
        return future

    async def run(self, job: Job, *args: Any) -> Any:
        """
        Submit a job and wait for its result.

        The wait is shielded: if the caller stops waiting, the job still
        runs to completion.
        """
        return await asyncio.shield(self.submit(job, *args))

    async def _work(self, queue: asyncio.Queue) -> None:
        while True:
            item: Optional[Tuple[Job, tuple, asyncio.Future]] = await queue.get()
            if item is None:
                break
            job, args, future = item
            try:
                result = await job(*args)
            except Exception as e:
                logger.error("Couldn't execute task on %s: %s", self.name, e)
                if not future.done():
                    future.set_exception(e)
            else:
                logger.debug("Task completed on %s with result: %s", self.name, result)
                if not future.done():
                    future.set_result(result)

    async def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting jobs. Jobs already queued still run.

        Args:
            wait: Wait for queued jobs to finish (ignored when called from
                  a job running on this timeline)
        """
        if self._closed:
            return
        self._closed = True
        if self._queue is None:
            return
        self._queue.put_nowait(None)
        worker = self._worker
        if wait and worker is not None and worker is not asyncio.current_task():
            await worker
