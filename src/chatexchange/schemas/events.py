"""
Event Schema Definitions

Typed events received over the push channel. Each raw event record carries
a numeric "event_type" code; decoding maps that code to an EventType token
and builds the payload bound to that token.

The EventType token is generic in its payload type, so a listener
registered for MESSAGE_POSTED is typed as Callable[[MessageEvent], Any]
without any cast.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventType(Generic[T]):
    """
    Kind tag of a chat event, bound to the payload type it produces.

    Instances are the module-level constants below; they compare by identity
    and are used as keys of the listener registry.

    Attributes:
        name: Readable name, e.g. "MESSAGE_POSTED"
        code: Numeric event_type used on the wire
    """

    def __init__(
        self,
        name: str,
        code: int,
        factory: Callable[[Dict[str, Any]], T],
    ):
        self.name = name
        self.code = code
        self._factory = factory

    def build(self, record: Dict[str, Any]) -> T:
        """Create the payload for a raw record of this kind."""
        return self._factory(record)

    def __repr__(self) -> str:
        return f"EventType({self.name})"


def _instant(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


@dataclass(frozen=True)
class MessageEvent:
    """
    Payload of a message-related event (posted, edited, reply, mention,
    starred, deleted).

    Attributes:
        event_id: Id of the event itself
        room_id: Room the event happened in
        instant: When the event happened
        message_id: Id of the message concerned
        user_id: Author of the message
        user_name: Display name of the author
        content: Rendered message content (None for deleted messages)
        parent_message_id: Message replied to, if any
        target_user_id: User pinged by a reply or mention, if any
        edit_count: Number of edits made to the message
        star_count: Number of stars on the message
        pinned: Whether room owners have pinned the message
    """

    event_id: int
    room_id: int
    instant: Optional[datetime]
    message_id: int
    user_id: int
    user_name: str
    content: Optional[str] = None
    parent_message_id: Optional[int] = None
    target_user_id: Optional[int] = None
    edit_count: int = 0
    star_count: int = 0
    pinned: bool = False

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "MessageEvent":
        """Create from a raw event record."""
        return cls(
            event_id=int(record.get("id", 0)),
            room_id=int(record.get("room_id", 0)),
            instant=_instant(record.get("time_stamp")),
            message_id=int(record.get("message_id", 0)),
            user_id=int(record.get("user_id", 0)),
            user_name=record.get("user_name", ""),
            content=record.get("content"),
            parent_message_id=record.get("parent_id"),
            target_user_id=record.get("target_user_id"),
            edit_count=int(record.get("message_edits", 0) or 0),
            star_count=int(record.get("message_stars", 0) or 0),
            pinned=bool(record.get("message_owner_stars", 0)),
        )


@dataclass(frozen=True)
class UserEvent:
    """
    Payload of a user entering or leaving a room.

    Attributes:
        event_id: Id of the event itself
        room_id: Room the event happened in
        instant: When the event happened
        user_id: User who entered or left
        user_name: Display name of that user
    """

    event_id: int
    room_id: int
    instant: Optional[datetime]
    user_id: int
    user_name: str

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserEvent":
        """Create from a raw event record."""
        return cls(
            event_id=int(record.get("id", 0)),
            room_id=int(record.get("room_id", 0)),
            instant=_instant(record.get("time_stamp")),
            user_id=int(record.get("user_id", 0)),
            user_name=record.get("user_name", ""),
        )


MESSAGE_POSTED: EventType[MessageEvent] = EventType(
    "MESSAGE_POSTED", 1, MessageEvent.from_record
)
MESSAGE_EDITED: EventType[MessageEvent] = EventType(
    "MESSAGE_EDITED", 2, MessageEvent.from_record
)
USER_ENTERED: EventType[UserEvent] = EventType(
    "USER_ENTERED", 3, UserEvent.from_record
)
USER_LEFT: EventType[UserEvent] = EventType("USER_LEFT", 4, UserEvent.from_record)
MESSAGE_STARRED: EventType[MessageEvent] = EventType(
    "MESSAGE_STARRED", 6, MessageEvent.from_record
)
USER_MENTIONED: EventType[MessageEvent] = EventType(
    "USER_MENTIONED", 8, MessageEvent.from_record
)
MESSAGE_DELETED: EventType[MessageEvent] = EventType(
    "MESSAGE_DELETED", 10, MessageEvent.from_record
)
MESSAGE_REPLY: EventType[MessageEvent] = EventType(
    "MESSAGE_REPLY", 18, MessageEvent.from_record
)

EVENT_TYPES: Dict[int, EventType[Any]] = {
    event_type.code: event_type
    for event_type in (
        MESSAGE_POSTED,
        MESSAGE_EDITED,
        USER_ENTERED,
        USER_LEFT,
        MESSAGE_STARRED,
        USER_MENTIONED,
        MESSAGE_DELETED,
        MESSAGE_REPLY,
    )
}


def decode_event(record: Dict[str, Any]) -> Optional[Tuple[EventType[Any], Any]]:
    """
    Decode a raw event record into its kind tag and typed payload.

    Args:
        record: Raw event record from a push frame

    Returns:
        (event_type, payload), or None for event codes this session
        does not model
    """
    event_type = EVENT_TYPES.get(record.get("event_type"))
    if event_type is None:
        logger.debug("Skipping unsupported event record: %s", record)
        return None
    return event_type, event_type.build(record)
