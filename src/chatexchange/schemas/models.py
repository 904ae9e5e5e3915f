"""
Value Objects

Immutable snapshots returned by room queries: users, messages and
room thumbs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _instant(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


@dataclass(frozen=True)
class User:
    """
    Point-in-time snapshot of a chat user.

    Attributes:
        id: User id
        name: Display name
        reputation: Reputation on the parent site
        moderator: Whether the user is a moderator
        room_owner: Whether the user owns the room
        last_seen: Last time the user was seen, None if unknown
        last_message: Last time the user posted, None if unknown
        current_in_room: Whether the user was in the room when fetched
    """

    id: int
    name: str
    reputation: int
    moderator: bool
    room_owner: bool
    last_seen: Optional[datetime]
    last_message: Optional[datetime]
    current_in_room: bool

    @classmethod
    def from_dict(cls, data: Dict[str, Any], in_room: bool) -> "User":
        """
        Create from one entry of the user info response.

        Args:
            data: User object returned by /user/info
            in_room: Presence resolved by the caller

        Returns:
            User snapshot
        """
        return cls(
            id=int(data["id"]),
            name=data["name"],
            reputation=int(data.get("reputation") or 0),
            moderator=bool(data.get("is_moderator")),
            room_owner=bool(data.get("is_owner")),
            last_seen=_instant(data.get("last_seen")),
            last_message=_instant(data.get("last_post")),
            current_in_room=in_room,
        )


@dataclass(frozen=True)
class Message:
    """
    A chat message.

    A message deleted by another user is hidden from non-privileged viewers,
    so it comes back with no author and no content, only deleted=True.

    Attributes:
        id: Message id
        user: Author snapshot, None when the message is hidden
        plain_content: Markdown source of the message
        content: Rendered HTML content
        deleted: Whether the message has been deleted
    """

    id: int
    user: Optional[User]
    plain_content: Optional[str]
    content: Optional[str]
    deleted: bool

    @classmethod
    def hidden(cls, message_id: int) -> "Message":
        """Build the value for a message that was deleted and is hidden."""
        return cls(
            id=message_id,
            user=None,
            plain_content=None,
            content=None,
            deleted=True,
        )


@dataclass(frozen=True)
class RoomThumbs:
    """
    Summary information about a room.

    Attributes:
        id: Room id
        name: Room name
        description: Room description
        is_favorite: Whether the logged-in user favorited the room
        tags: Tag names attached to the room
    """

    id: int
    name: str
    description: str
    is_favorite: bool
    tags: List[str] = field(default_factory=list)
