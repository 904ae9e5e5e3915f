"""
Event Dispatcher

Decodes raw event records from the push channel and hands each typed event
to the listeners registered for its kind.

Delivery never blocks the receive loop:
    - coroutine listeners run as their own asyncio task
    - plain callables run on a thread pool, so a blocking listener
      cannot stall frame reception or other listeners

A listener that raises is logged and has no effect on other listeners.
"""

import asyncio
import inspect
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
    TypeVar,
)

from .config import LISTENER_POOL_SIZE
from .schemas.events import EventType, decode_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T], Any]
Decoder = Callable[[Dict[str, Any]], Optional[Tuple[EventType[Any], Any]]]


def _is_async_listener(listener: Callable[..., Any]) -> bool:
    """True for coroutine functions, partials of them and async callables."""
    if inspect.iscoroutinefunction(listener):
        return True
    call = getattr(listener, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


class EventDispatcher:
    """
    Kind-indexed listener registry with asynchronous delivery.

    Listeners for one kind are delivered in registration order. The same
    listener registered twice is called twice.
    """

    def __init__(
        self,
        decoder: Decoder = decode_event,
        pool_size: int = LISTENER_POOL_SIZE,
    ):
        """
        Initialize the dispatcher.

        Args:
            decoder: Turns a raw record into (event_type, payload) or None
            pool_size: Most threads blocking listeners may occupy at once
        """
        self._decoder = decoder
        self._listeners: Dict[EventType[Any], List[Listener]] = {}
        self._pool = ThreadPoolExecutor(
            max_workers=pool_size, thread_name_prefix="chat-listener"
        )
        self._pending: Set[asyncio.Future] = set()
        self._closed = False

    def add_listener(self, event_type: EventType[T], listener: Listener[T]) -> None:
        """
        Register a listener for future events of one kind.

        Args:
            event_type: Kind to listen to, e.g. MESSAGE_POSTED
            listener: Callable or coroutine function receiving the payload
        """
        # Copy on write: dispatch iterates a snapshot of the list
        listeners = list(self._listeners.get(event_type, []))
        listeners.append(listener)
        self._listeners[event_type] = listeners
        logger.debug("Listener %r added for %s", listener, event_type.name)

    def listeners(self, event_type: EventType[Any]) -> List[Listener]:
        """Return the listeners registered for a kind, in delivery order."""
        return list(self._listeners.get(event_type, []))

    def dispatch(self, records: Iterable[Dict[str, Any]]) -> int:
        """
        Deliver the events of one frame, in frame order.

        Must be called from the event loop thread.

        Args:
            records: Raw event records

        Returns:
            Number of listener invocations started
        """
        if self._closed:
            logger.debug("Dispatcher closed, dropping events")
            return 0

        loop = asyncio.get_running_loop()
        started = 0
        for record in records:
            try:
                decoded = self._decoder(record)
            except Exception as e:
                logger.error("Failed to decode event record %s: %s", record, e)
                continue
            if decoded is None:
                continue

            event_type, event = decoded
            for listener in self._listeners.get(event_type, ()):
                if _is_async_listener(listener):
                    future = loop.create_task(
                        self._deliver_async(listener, event_type, event)
                    )
                else:
                    future = loop.run_in_executor(
                        self._pool, self._deliver, listener, event_type, event
                    )
                self._pending.add(future)
                future.add_done_callback(self._pending.discard)
                started += 1
        return started

    @staticmethod
    def _deliver(
        listener: Listener, event_type: EventType[Any], event: Any
    ) -> None:
        try:
            result = listener(event)
        except Exception:
            logger.exception(
                "Listener %r failed on %s event", listener, event_type.name
            )
            return
        if inspect.iscoroutine(result):
            result.close()
            logger.warning(
                "Listener %r returned a coroutine from a worker thread; "
                "register it as a coroutine function instead",
                listener,
            )

    @staticmethod
    async def _deliver_async(
        listener: Listener, event_type: EventType[Any], event: Any
    ) -> None:
        try:
            await listener(event)
        except Exception:
            logger.exception(
                "Listener %r failed on %s event", listener, event_type.name
            )

    async def join(self) -> None:
        """Wait until every delivery started so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def shutdown(self) -> None:
        """
        Stop dispatching. Deliveries already started are left to finish.
        """
        if self._closed:
            return
        self._closed = True
        self._pool.shutdown(wait=False)
