"""
Room Membership Tracker

Keeps the set of user ids currently present in a room. The set is seeded
from the room page and then kept live by two built-in listeners for
USER_ENTERED and USER_LEFT events.

The listeners are coroutines, so they run on the event loop in the order
events were received. The set itself is replaced, never mutated in place,
so readers always see a consistent snapshot.
"""

import logging
from typing import FrozenSet, Iterable

from .dispatcher import EventDispatcher
from .schemas.events import USER_ENTERED, USER_LEFT, UserEvent

logger = logging.getLogger(__name__)


class MembershipTracker:
    """
    Live view of who is in the room.

    Attributes:
        room_id: Room being tracked (for logging)
    """

    def __init__(self, room_id: int = 0):
        self.room_id = room_id
        self._user_ids: FrozenSet[int] = frozenset()

    @property
    def user_ids(self) -> FrozenSet[int]:
        """Snapshot of the ids of users currently in the room."""
        return self._user_ids

    def reset(self, user_ids: Iterable[int]) -> None:
        """
        Replace the membership wholesale, e.g. after scraping the room page.

        Args:
            user_ids: Ids of the users present
        """
        self._user_ids = frozenset(user_ids)
        logger.debug(
            "Membership of room %s reset to %d users",
            self.room_id,
            len(self._user_ids),
        )

    def is_present(self, user_id: int) -> bool:
        """True if the user is currently in the room."""
        return user_id in self._user_ids

    def register(self, dispatcher: EventDispatcher) -> None:
        """Install the entered/left listeners on a dispatcher."""
        dispatcher.add_listener(USER_ENTERED, self.on_user_entered)
        dispatcher.add_listener(USER_LEFT, self.on_user_left)

    async def on_user_entered(self, event: UserEvent) -> None:
        self._user_ids = self._user_ids | {event.user_id}
        logger.debug("User %s entered room %s", event.user_id, self.room_id)

    async def on_user_left(self, event: UserEvent) -> None:
        self._user_ids = self._user_ids - {event.user_id}
        logger.debug("User %s left room %s", event.user_id, self.room_id)
