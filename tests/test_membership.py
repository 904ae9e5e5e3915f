"""
Tests for the Membership Tracker

The membership after a sequence of entered/left events must equal an
independent replay of that sequence on the initial scrape.
"""

import pytest

from chatexchange import EventDispatcher, MembershipTracker, USER_ENTERED, USER_LEFT

from conftest import user_record

ENTERED = 3
LEFT = 4


def replay(initial, events):
    """Reference model: apply (kind, user_id) pairs to a set."""
    members = set(initial)
    for kind, user_id in events:
        if kind == ENTERED:
            members.add(user_id)
        else:
            members.discard(user_id)
    return members


def test_reset_replaces_membership():
    tracker = MembershipTracker(room_id=1)
    tracker.reset([1, 2, 3])
    tracker.reset([4])

    assert tracker.user_ids == frozenset({4})
    assert tracker.is_present(4)
    assert not tracker.is_present(1)


def test_reset_removes_duplicates():
    tracker = MembershipTracker()
    tracker.reset([7, 7, 8])

    assert tracker.user_ids == frozenset({7, 8})


def test_register_installs_builtin_listeners():
    dispatcher = EventDispatcher()
    tracker = MembershipTracker()
    tracker.register(dispatcher)

    assert dispatcher.listeners(USER_ENTERED) == [tracker.on_user_entered]
    assert dispatcher.listeners(USER_LEFT) == [tracker.on_user_left]
    dispatcher.shutdown()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "events",
    [
        [(ENTERED, 3), (LEFT, 1)],
        [(ENTERED, 3), (ENTERED, 3)],
        [(LEFT, 2), (ENTERED, 2), (LEFT, 2)],
        [(LEFT, 99)],
        [(ENTERED, 5), (LEFT, 5), (ENTERED, 5)],
    ],
)
async def test_membership_matches_replay(events):
    dispatcher = EventDispatcher()
    tracker = MembershipTracker()
    tracker.register(dispatcher)
    tracker.reset([1, 2])

    dispatcher.dispatch([user_record(kind, user_id) for kind, user_id in events])
    await dispatcher.join()

    assert tracker.user_ids == frozenset(replay([1, 2], events))
    dispatcher.shutdown()


@pytest.mark.asyncio
async def test_snapshot_is_not_affected_by_later_events():
    dispatcher = EventDispatcher()
    tracker = MembershipTracker()
    tracker.register(dispatcher)
    tracker.reset([1])

    snapshot = tracker.user_ids
    dispatcher.dispatch([user_record(ENTERED, 2)])
    await dispatcher.join()

    assert snapshot == frozenset({1})
    assert tracker.user_ids == frozenset({1, 2})
    dispatcher.shutdown()
