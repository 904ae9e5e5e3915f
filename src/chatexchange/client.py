"""
Chat Client

Entry point for host applications. A ChatClient holds the authenticated
cookies and the shared HTTP transport for one chat host, and hands out at
most one live Room session per room id.

Usage:
    async with ChatClient(ChatHost.STACK_OVERFLOW, cookies) as client:
        room = await client.join_room(1)
        room.add_event_listener(MESSAGE_POSTED, on_message)
        await room.send("Hello")
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from .config import ChatHost, SessionConfig
from .room import Room
from .transport import HttpClient

logger = logging.getLogger(__name__)


class ChatClient:
    """
    Registry of room sessions sharing one host, cookie set and transport.

    Attributes:
        host: Chat server
        config: Configuration applied to every room session
    """

    def __init__(
        self,
        host: ChatHost,
        cookies: Dict[str, str],
        config: Optional[SessionConfig] = None,
        http: Optional[HttpClient] = None,
        websocket_factory: Optional[Callable] = None,
    ):
        """
        Initialize the chat client.

        Args:
            host: Chat server to talk to
            cookies: Cookies of an authenticated chat session
            config: Session configuration (defaults to SessionConfig())
            http: Optional transport (for dependency injection/testing)
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
        """
        self.host = host
        self.config = config or SessionConfig()
        self._cookies = dict(cookies)
        self._http = http or HttpClient(timeout=self.config.http_timeout)
        self._websocket_factory = websocket_factory
        self._rooms: Dict[int, Room] = {}
        self._join_lock = asyncio.Lock()

        logger.info("ChatClient initialized for host: %s", host.value)

    @property
    def rooms(self) -> List[Room]:
        """Rooms with a live session."""
        return [room for room in self._rooms.values() if not room.is_closed]

    def get_room(self, room_id: int) -> Optional[Room]:
        """
        Get the live session of a room.

        Args:
            room_id: Room id

        Returns:
            The Room, or None if not joined
        """
        room = self._rooms.get(room_id)
        if room is None or room.is_closed:
            return None
        return room

    async def join_room(self, room_id: int) -> Room:
        """
        Join a room, or return the existing session if already joined.

        Args:
            room_id: Room id

        Returns:
            The open Room session
        """
        async with self._join_lock:
            room = self.get_room(room_id)
            if room is not None:
                return room

            logger.info("Joining room %s on %s", room_id, self.host.value)
            room = Room(
                self.host,
                room_id,
                self._http,
                self._cookies,
                config=self.config,
                websocket_factory=self._websocket_factory,
            )
            await room.open()
            self._rooms[room_id] = room
            return room

    async def leave_room(self, room_id: int) -> None:
        """Leave a room if it is joined."""
        room = self._rooms.pop(room_id, None)
        if room is not None:
            await room.leave()

    async def close(self) -> None:
        """Leave every joined room and release the transport."""
        rooms, self._rooms = list(self._rooms.values()), {}
        for room in rooms:
            try:
                await room.leave()
            except Exception as e:
                logger.error("Failed to leave room %s: %s", room.room_id, e)
                await room.close()
        await self._http.close()
        logger.info("ChatClient for %s closed", self.host.value)

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
