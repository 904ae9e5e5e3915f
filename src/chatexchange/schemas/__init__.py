"""
Schemas Package

Typed events decoded from the push channel and the value objects
returned by room queries.
"""

from .events import (
    EventType,
    MessageEvent,
    UserEvent,
    MESSAGE_POSTED,
    MESSAGE_EDITED,
    USER_ENTERED,
    USER_LEFT,
    MESSAGE_STARRED,
    USER_MENTIONED,
    MESSAGE_DELETED,
    MESSAGE_REPLY,
    EVENT_TYPES,
    decode_event,
)
from .models import User, Message, RoomThumbs

__all__ = [
    # Events
    "EventType",
    "MessageEvent",
    "UserEvent",
    "MESSAGE_POSTED",
    "MESSAGE_EDITED",
    "USER_ENTERED",
    "USER_LEFT",
    "MESSAGE_STARRED",
    "USER_MENTIONED",
    "MESSAGE_DELETED",
    "MESSAGE_REPLY",
    "EVENT_TYPES",
    "decode_event",
    # Values
    "User",
    "Message",
    "RoomThumbs",
]
