"""
Chat Exchange Package

Long-lived client sessions for Stack Exchange chat rooms: a push channel
for incoming events, throttle-aware mutating actions and a typed event
subscription interface.

Modules:
    - client: ChatClient, one session per joined room
    - room: Room session (actions, queries, lifecycle)
    - channel: WebSocket push channel with inactivity watchdog
    - dispatcher: kind-indexed listener registry
    - retry: fkey-carrying POSTs retried on throttling
    - schemas: typed events and value objects
"""

from .client import ChatClient
from .room import Room, within_edit_window
from .channel import PushChannel, ChannelState
from .dispatcher import EventDispatcher
from .membership import MembershipTracker
from .retry import RetryPoster
from .scheduler import BackgroundScheduler
from .timeline import SerialTimeline
from .transport import HttpClient, HttpResponse
from .config import ChatHost, SessionConfig
from .exceptions import (
    ChatError,
    TransportError,
    HttpStatusError,
    OperationError,
    ThrottledError,
    SessionClosedError,
)
from .schemas import (
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
    decode_event,
    User,
    Message,
    RoomThumbs,
)

__all__ = [
    # Sessions
    "ChatClient",
    "Room",
    "within_edit_window",
    # Components
    "PushChannel",
    "ChannelState",
    "EventDispatcher",
    "MembershipTracker",
    "RetryPoster",
    "BackgroundScheduler",
    "SerialTimeline",
    "HttpClient",
    "HttpResponse",
    # Configuration
    "ChatHost",
    "SessionConfig",
    # Errors
    "ChatError",
    "TransportError",
    "HttpStatusError",
    "OperationError",
    "ThrottledError",
    "SessionClosedError",
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
    "decode_event",
    # Values
    "User",
    "Message",
    "RoomThumbs",
]
