"""
Room Session

A long-lived session in one chat room. It composes:
    - RetryPoster: throttle-aware mutating calls carrying the fkey
    - PushChannel: the event WebSocket, with an inactivity watchdog
    - EventDispatcher: typed event delivery to registered listeners
    - BackgroundScheduler: fkey refresh, pingable resync, watchdog
    - MembershipTracker: who is in the room right now

Mutating actions and background jobs all run on one SerialTimeline, so an
fkey refresh never lands in the middle of an action.

Usage:
    room = Room(ChatHost.STACK_OVERFLOW, 1, http, cookies)
    await room.open()
    room.add_event_listener(MESSAGE_POSTED, on_message)
    message_id = await room.send("Hello")
    await room.leave()
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from .channel import PushChannel
from .config import ChatHost, SessionConfig
from .dispatcher import Decoder, EventDispatcher, Listener
from .exceptions import HttpStatusError, OperationError, SessionClosedError
from .membership import MembershipTracker
from .retry import RetryPoster, expect_ok, parse_body
from .scheduler import BackgroundScheduler
from .schemas.events import EventType, decode_event
from .schemas.models import Message, RoomThumbs, User
from .scraper import (
    extract_anchor_texts,
    extract_current_user_ids,
    extract_fkey,
    extract_history_author_id,
    extract_last_timestamp,
    history_shows_deleted,
)
from .timeline import SerialTimeline
from .transport import HttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

MESSAGE_TIME_FORMAT = "%I:%M %p"  # e.g. "09:41 PM", UTC
SECONDS_PER_DAY = 24 * 60 * 60


def within_edit_window(timestamp: str, now: datetime, window: int) -> bool:
    """
    Check whether a message posted at `timestamp` can still be edited.

    History pages only show the time of day with minute precision, so the
    elapsed time is computed on the time of day and wrapped at midnight.

    Args:
        timestamp: Time shown on the history page, e.g. "09:41 PM" (UTC)
        now: Current instant
        window: Edit window in seconds (inclusive)

    Returns:
        True if at most `window` seconds have elapsed
    """
    posted = datetime.strptime(timestamp.strip(), MESSAGE_TIME_FORMAT).time()
    current = now.astimezone(timezone.utc)
    elapsed = (
        current.hour * 3600 + current.minute * 60 + current.second
    ) - (posted.hour * 3600 + posted.minute * 60)
    if elapsed < -SECONDS_PER_DAY // 2:
        # Posted before midnight
        elapsed += SECONDS_PER_DAY
    return elapsed <= window


def _field(result: Any, key: str, action: str) -> Any:
    if not isinstance(result, dict) or key not in result:
        raise OperationError(
            f"Unexpected response to {action}: {result}", str(result)
        )
    return result[key]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Room:
    """
    Session in one chat room.

    Attributes:
        host: Chat server the room lives on
        room_id: Room id (unique per host)
        config: Timings and limits in use
    """

    def __init__(
        self,
        host: ChatHost,
        room_id: int,
        http: HttpClient,
        cookies: Dict[str, str],
        config: Optional[SessionConfig] = None,
        websocket_factory: Optional[Callable] = None,
        decoder: Decoder = decode_event,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the room session. No network call is made until open().

        Args:
            host: Chat server hosting the room
            room_id: Room id
            http: Transport shared with other rooms of the same client
            cookies: Authenticated session cookies
            config: Timings and limits (defaults to SessionConfig())
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
            decoder: Raw event record decoder
            clock: Returns the current UTC instant (for the edit window)
            sleep: Coroutine used to wait out throttling
        """
        self.host = host
        self.room_id = room_id
        self.config = config or SessionConfig()
        self._http = http
        self._cookies = dict(cookies)
        self._clock = clock
        self._fkey: Optional[str] = None
        self._pingable_user_ids: List[int] = []
        self._opened = False
        self._closed = False
        self._has_left = False

        self._timeline = SerialTimeline(f"room-{room_id}")
        self._scheduler = BackgroundScheduler(self._timeline)
        self._dispatcher = EventDispatcher(decoder, self.config.listener_pool_size)
        self._membership = MembershipTracker(room_id)
        # Built-in listeners go first, before any user listener
        self._membership.register(self._dispatcher)
        self._poster = RetryPoster(
            http,
            self._cookies,
            lambda: self._fkey,
            retries=self.config.throttle_retries,
            sleep=sleep,
        )
        self._channel = PushChannel(
            room_id,
            host.base_url,
            self._fetch_websocket_url,
            self._dispatcher.dispatch,
            websocket_factory=websocket_factory,
            inactivity_threshold=self.config.inactivity_threshold,
        )

        logger.info("Room session created for room %s on %s", room_id, host.value)

    # ── Lifecycle ─────────────────────────────────────────────────────

    @property
    def fkey(self) -> Optional[str]:
        """Current anti-abuse token."""
        return self._fkey

    @property
    def is_closed(self) -> bool:
        """True once the session has been closed or left."""
        return self._closed

    @property
    def channel(self) -> PushChannel:
        """The push channel of this session."""
        return self._channel

    @property
    def dispatcher(self) -> EventDispatcher:
        """The event dispatcher of this session."""
        return self._dispatcher

    @property
    def current_user_ids(self) -> frozenset:
        """Ids of the users currently in the room."""
        return self._membership.user_ids

    @property
    def pingable_user_ids(self) -> List[int]:
        """Ids of the users that can be pinged in this room."""
        return list(self._pingable_user_ids)

    async def open(self) -> None:
        """
        Start the session: fetch the fkey, the membership and the pingable
        roster, connect the push channel and start background jobs.

        Raises:
            TransportError, OperationError: If any startup step fails; the
            session is closed in that case
        """
        if self._closed:
            raise SessionClosedError(f"Room {self.room_id} is closed")
        if self._opened:
            return
        self._opened = True

        try:
            page = await self._fetch_room_page()
            self._apply_fkey(page)
            self._membership.reset(extract_current_user_ids(page))
            await self._sync_pingable_users()
            await self._channel.connect()
        except Exception:
            await self.close()
            raise

        self._scheduler.schedule(
            "fkey refresh", self._refresh_fkey, self.config.token_refresh_interval
        )
        self._scheduler.schedule(
            "pingable sync",
            self._sync_pingable_users,
            self.config.pingable_sync_interval,
        )
        self._scheduler.schedule(
            "watchdog", self._channel.watchdog_tick, self.config.watchdog_interval
        )
        logger.info("Joined room %s on %s", self.room_id, self.host.value)

    async def leave(self) -> None:
        """
        Leave the room and close the session.

        Calling this more than once has no effect.
        """
        if self._has_left or self._closed:
            return
        self._has_left = True
        logger.debug("Leaving room %s on %s", self.room_id, self.host.value)
        try:
            await self._submit(
                self._poster.execute,
                self._url(f"/chats/leave/{self.room_id}"),
                {"quiet": "true"},
            )
        finally:
            await self.close()

    async def close(self) -> None:
        """
        Stop background jobs and listener delivery, then close the push
        channel. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        await self._scheduler.stop()
        await self._timeline.shutdown()
        self._dispatcher.shutdown()
        await self._channel.shutdown()
        logger.info("Closed session for room %s on %s", self.room_id, self.host.value)

    def add_event_listener(self, event_type: EventType[T], listener: Listener[T]) -> None:
        """
        Register a listener for future events of the given kind.

        Args:
            event_type: Event kind, e.g. MESSAGE_POSTED
            listener: Callable or coroutine function receiving the event
        """
        self._dispatcher.add_listener(event_type, listener)

    # ── Actions ───────────────────────────────────────────────────────

    async def send(self, message: str) -> int:
        """
        Send a message.

        Args:
            message: Content of the message

        Returns:
            Id of the posted message
        """
        logger.info("Task added - sending message '%s' to room %s.", message, self.room_id)
        result = await self._submit(
            self._poster.execute,
            self._url(f"/chats/{self.room_id}/messages/new"),
            {"text": message},
        )
        logger.debug(
            "Message '%s' sent to room %s, raw result: %s", message, self.room_id, result
        )
        return int(_field(result, "id", "send message"))

    async def reply_to(self, message_id: int, message: str) -> int:
        """
        Reply to a message.

        Args:
            message_id: Id of the message to reply to
            message: Content of the reply

        Returns:
            Id of the posted reply
        """
        return await self.send(f":{message_id} {message}")

    async def edit(self, message_id: int, message: str) -> int:
        """
        Replace the content of a message.

        Returns:
            The id of the edited message

        Raises:
            OperationError: If the server refused the edit
        """
        logger.info("Task added - editing message %s in room %s.", message_id, self.room_id)
        result = await self._submit(
            self._poster.execute,
            self._url(f"/messages/{message_id}"),
            {"text": message},
        )
        logger.debug(
            "Message %s edited to '%s' in room %s, raw result: %s",
            message_id,
            message,
            self.room_id,
            result,
        )
        expect_ok(result, f"edit message {message_id}")
        return message_id

    async def delete(self, message_id: int) -> None:
        """Delete a message."""
        logger.info("Task added - deleting message %s in room %s.", message_id, self.room_id)
        await self._acknowledged(
            f"/messages/{message_id}/delete", f"delete message {message_id}"
        )

    async def toggle_star(self, message_id: int) -> None:
        """Star or unstar a message."""
        logger.info(
            "Task added - starring/unstarring message %s in room %s.",
            message_id,
            self.room_id,
        )
        await self._acknowledged(
            f"/messages/{message_id}/star", f"star/unstar message {message_id}"
        )

    async def toggle_pin(self, message_id: int) -> None:
        """Pin or unpin a message (room owners only)."""
        logger.info(
            "Task added - pinning/unpinning message %s in room %s.",
            message_id,
            self.room_id,
        )
        await self._acknowledged(
            f"/messages/{message_id}/owner-star", f"pin/unpin message {message_id}"
        )

    async def _acknowledged(self, path: str, action: str) -> None:
        result = await self._submit(self._poster.execute, self._url(path))
        logger.debug("%s in room %s, raw result: %s", action, self.room_id, result)
        expect_ok(result, action)

    # ── Queries ───────────────────────────────────────────────────────

    async def is_editable(self, message_id: int) -> bool:
        """
        Check whether a message can be edited right now.

        This is advisory: the edit window may elapse before a following
        edit() reaches the server.

        Args:
            message_id: Id of the message

        Returns:
            True if the message was posted within the edit window
        """
        self._ensure_open()
        history = await self._http.get(
            self._url(f"/messages/{message_id}/history"),
            cookies=self._cookies,
            params={"fkey": self._fkey},
        )
        timestamp = extract_last_timestamp(history.text)
        if timestamp is None:
            raise OperationError(
                f"No timestamp found in the history of message {message_id}"
            )
        return within_edit_window(timestamp, self._clock(), self.config.edit_window)

    async def get_message(self, message_id: int) -> Message:
        """
        Fetch a message with its author and content.

        A 404 means the message was deleted by its author: deleted messages
        of other users are hidden from non-privileged viewers. That case
        returns a deleted Message with no content instead of raising.

        Args:
            message_id: Id of the message

        Returns:
            The message
        """
        self._ensure_open()
        url = self._url(f"/message/{message_id}")
        try:
            plain = await self._http.get(
                url, cookies=self._cookies, params={"fkey": self._fkey, "plain": "true"}
            )
            rendered = await self._http.get(
                url, cookies=self._cookies, params={"fkey": self._fkey, "plain": "false"}
            )
            history = await self._http.get(
                self._url(f"/messages/{message_id}/history"),
                cookies=self._cookies,
                params={"fkey": self._fkey},
            )
        except HttpStatusError as e:
            if e.status == 404:
                logger.info("Tried to view deleted message %s", message_id)
                return Message.hidden(message_id)
            raise

        author_id = extract_history_author_id(history.text)
        user = await self.get_user(author_id) if author_id is not None else None
        return Message(
            id=message_id,
            user=user,
            plain_content=plain.text,
            content=rendered.text,
            deleted=history_shows_deleted(history.text),
        )

    async def get_user(self, user_id: int) -> User:
        """
        Fetch one user, with presence resolved against the membership.

        Raises:
            OperationError: If the server returned no such user
        """
        users = await self._get_users([user_id], self._membership.is_present)
        if not users:
            raise OperationError(f"No user found with id {user_id}")
        return users[0]

    async def get_current_users(self) -> List[User]:
        """Fetch the users present in the room right now."""
        return await self._get_users(sorted(self._membership.user_ids), lambda _: True)

    async def get_pingable_users(self) -> List[User]:
        """
        Fetch the users that can be pinged: everyone who was in the room
        during the last 14 days.
        """
        return await self._get_users(
            self._pingable_user_ids, self._membership.is_present
        )

    async def _get_users(
        self, user_ids: Iterable[int], in_room: Callable[[int], bool]
    ) -> List[User]:
        self._ensure_open()
        ids = list(user_ids)
        if not ids:
            return []
        result = await self._poster.execute(
            self._url("/user/info"),
            {"ids": ",".join(str(i) for i in ids), "roomId": str(self.room_id)},
        )
        users = _field(result, "users", "user info")
        return [User.from_dict(data, in_room(int(data["id"]))) for data in users]

    async def get_thumbs(self) -> RoomThumbs:
        """Fetch the room's name, description, favorite flag and tags."""
        self._ensure_open()
        response = await self._http.get(
            self._url(f"/rooms/thumbs/{self.room_id}"), cookies=self._cookies
        )
        data = parse_body(response.text)
        return RoomThumbs(
            id=int(_field(data, "id", "room thumbs")),
            name=data.get("name", ""),
            description=data.get("description", ""),
            is_favorite=bool(data.get("isFavorite")),
            tags=extract_anchor_texts(data.get("tags") or ""),
        )

    # ── Internals ─────────────────────────────────────────────────────

    def _url(self, path: str) -> str:
        return f"{self.host.base_url}{path}"

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"Room {self.room_id} is closed")

    async def _submit(self, job: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        self._ensure_open()
        return await self._timeline.run(job, *args)

    async def _fetch_room_page(self) -> str:
        response = await self._http.get(
            self._url(f"/rooms/{self.room_id}"), cookies=self._cookies
        )
        return response.text

    def _apply_fkey(self, page: str) -> None:
        fkey = extract_fkey(page)
        if not fkey:
            raise OperationError(f"No fkey found on the page of room {self.room_id}")
        self._fkey = fkey
        logger.debug("New fkey retrieved for room %s", self.room_id)

    async def _refresh_fkey(self) -> None:
        self._apply_fkey(await self._fetch_room_page())

    async def _sync_pingable_users(self) -> None:
        response = await self._http.get(
            self._url(f"/rooms/pingable/{self.room_id}"), cookies=self._cookies
        )
        entries = parse_body(response.text)
        try:
            if not isinstance(entries, list):
                raise TypeError("expected a list of entries")
            self._pingable_user_ids = [int(entry[0]) for entry in entries]
        except (TypeError, IndexError, KeyError, ValueError) as e:
            raise OperationError(
                f"Unexpected pingable users response: {response.text}", response.text
            ) from e
        logger.debug(
            "Pingable users of room %s synced: %d users",
            self.room_id,
            len(self._pingable_user_ids),
        )

    async def _fetch_websocket_url(self) -> str:
        auth = await self._poster.execute(
            self._url("/ws-auth"), {"roomid": str(self.room_id)}
        )
        events = await self._poster.execute(self._url(f"/chats/{self.room_id}/events"))
        url = _field(auth, "url", "websocket authentication")
        time = _field(events, "time", "event time lookup")
        return f"{url}?l={time}"

    def __repr__(self) -> str:
        return f"Room(host={self.host.value!r}, room_id={self.room_id})"
