"""
Push Channel

Owns the WebSocket connection over which the chat server streams room
events.

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED -> ...
    any state    -> CLOSED (terminal, session shutdown only)

Socket errors are logged and never close the channel by themselves: the
server does not reliably report silent failures, so the inactivity
watchdog is the only recovery path. A channel that stays silent longer
than the inactivity threshold is closed and reopened.

Usage:
    channel = PushChannel(room_id, origin, url_provider, dispatcher.dispatch)
    await channel.connect()
    await channel.watchdog_tick()   # every 30 seconds
    await channel.shutdown()
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import INACTIVITY_THRESHOLD
from .exceptions import SessionClosedError, TransportError

logger = logging.getLogger(__name__)


class ChannelState(Enum):
    """Connection state of a push channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class PushChannel:
    """
    Receive-only WebSocket channel for one room.

    Attributes:
        room_id: Room whose events are forwarded
        origin: Origin header sent when opening the socket
        last_activity: Clock reading of the last received frame
        reconnect_count: Number of watchdog-triggered reconnects
    """

    def __init__(
        self,
        room_id: int,
        origin: str,
        url_provider: Callable[[], Awaitable[str]],
        on_events: Callable[[List[Dict[str, Any]]], Any],
        websocket_factory: Optional[Callable] = None,
        inactivity_threshold: float = INACTIVITY_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the push channel.

        Args:
            room_id: Room whose events are forwarded
            origin: Origin header value (the chat host's base URL)
            url_provider: Coroutine returning a fresh one-time socket URL
            on_events: Receives the raw event records of this room, per frame
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
            inactivity_threshold: Seconds of silence before reconnecting
            clock: Monotonic clock (injectable for tests)
        """
        self.room_id = room_id
        self.origin = origin
        self._url_provider = url_provider
        self._on_events = on_events
        self._websocket_factory = websocket_factory or websockets.connect
        self._inactivity_threshold = inactivity_threshold
        self._clock = clock
        self._state = ChannelState.DISCONNECTED
        self._websocket: Any = None
        self._receiver: Optional[asyncio.Task] = None
        self.last_activity = clock()
        self.reconnect_count = 0

    @property
    def state(self) -> ChannelState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the socket is currently open."""
        return self._state is ChannelState.CONNECTED

    async def connect(self) -> None:
        """
        Open the socket and start the receive loop.

        Does nothing if already connected.

        Raises:
            SessionClosedError: If the channel has been shut down
            TransportError: If the socket cannot be opened
            OperationError: If the server refused to hand out a socket URL
        """
        if self._state is ChannelState.CLOSED:
            raise SessionClosedError(f"Push channel of room {self.room_id} is closed")
        if self._state is ChannelState.CONNECTED:
            return

        self._state = ChannelState.CONNECTING
        try:
            url = await self._url_provider()
            logger.debug("Connecting to chat websocket %s", url)
            websocket = await self._websocket_factory(url, origin=self.origin)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._state = ChannelState.DISCONNECTED
            raise TransportError(f"Cannot connect to chat websocket: {e}") from e
        except BaseException:
            self._state = ChannelState.DISCONNECTED
            raise

        if self._state is ChannelState.CLOSED:
            # Shut down while the handshake was in flight
            await websocket.close()
            raise SessionClosedError(f"Push channel of room {self.room_id} is closed")

        self._websocket = websocket
        self._state = ChannelState.CONNECTED
        self.last_activity = self._clock()
        self._receiver = asyncio.get_running_loop().create_task(
            self._receive_loop(websocket)
        )
        logger.info("Push channel connected for room %s", self.room_id)

    async def _receive_loop(self, websocket: Any) -> None:
        try:
            async for frame in websocket:
                self.handle_frame(frame)
        except ConnectionClosed as e:
            logger.warning(
                "Push channel of room %s closed by server: %s", self.room_id, e
            )
        except Exception as e:
            logger.error(
                "An error occurred while receiving on the push channel "
                "of room %s: %s",
                self.room_id,
                e,
                exc_info=True,
            )

    def handle_frame(self, frame: Any) -> None:
        """
        Process one received frame.

        Frames are JSON objects keyed by "r<roomId>"; only this room's
        "e" array is forwarded, entries for other rooms are ignored.

        Args:
            frame: Raw frame (text or bytes)
        """
        self.last_activity = self._clock()
        logger.debug("Received frame: %s", frame)

        try:
            data = json.loads(frame)
        except ValueError as e:
            logger.error("Failed to parse push frame JSON: %s", e)
            return
        if not isinstance(data, dict):
            return

        room_data = data.get(f"r{self.room_id}")
        if not isinstance(room_data, dict):
            return
        events = room_data.get("e")
        if not isinstance(events, list) or not events:
            return

        try:
            self._on_events(events)
        except Exception as e:
            logger.error("Failed to dispatch events of room %s: %s", self.room_id, e)

    async def close(self) -> None:
        """
        Close the socket. Safe to call when already disconnected or closed.
        """
        websocket, self._websocket = self._websocket, None
        receiver, self._receiver = self._receiver, None
        if self._state is not ChannelState.CLOSED:
            self._state = ChannelState.DISCONNECTED

        if websocket is not None:
            try:
                await websocket.close()
            except Exception as e:
                logger.error("Error while closing the push channel: %s", e)
        if receiver is not None and receiver is not asyncio.current_task():
            receiver.cancel()
            await asyncio.gather(receiver, return_exceptions=True)

    async def reconnect(self) -> None:
        """Close the socket and open a new one."""
        await self.close()
        self.reconnect_count += 1
        await self.connect()

    async def watchdog_tick(self) -> bool:
        """
        Reconnect if nothing was received for longer than the threshold.

        Returns:
            True if a reconnect was attempted

        Raises:
            TransportError, OperationError: If the reconnect failed; the
            next tick will try again
        """
        if self._state is ChannelState.CLOSED:
            return False
        idle = self._clock() - self.last_activity
        if idle <= self._inactivity_threshold:
            return False
        logger.debug(
            "Rebooting the push channel of room %s after %.0f seconds of inactivity",
            self.room_id,
            idle,
        )
        await self.reconnect()
        return True

    async def shutdown(self) -> None:
        """Close the socket and enter the terminal CLOSED state."""
        self._state = ChannelState.CLOSED
        await self.close()
        logger.info("Push channel of room %s shut down", self.room_id)
