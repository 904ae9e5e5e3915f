"""
Tests for event decoding
"""

from datetime import datetime, timezone

from chatexchange import (
    MESSAGE_EDITED,
    MESSAGE_POSTED,
    MESSAGE_REPLY,
    USER_ENTERED,
    USER_LEFT,
    MessageEvent,
    UserEvent,
    decode_event,
)
from chatexchange.schemas.events import EVENT_TYPES

from conftest import posted_record, user_record


def test_decode_message_posted():
    event_type, event = decode_event(posted_record(message_id=12, content="hi"))

    assert event_type is MESSAGE_POSTED
    assert isinstance(event, MessageEvent)
    assert event.message_id == 12
    assert event.content == "hi"
    assert event.user_id == 100
    assert event.instant == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_decode_reply_carries_parent_and_target():
    record = dict(posted_record(), event_type=18, parent_id=11, target_user_id=7)

    event_type, event = decode_event(record)

    assert event_type is MESSAGE_REPLY
    assert event.parent_message_id == 11
    assert event.target_user_id == 7


def test_decode_edit_counts():
    record = dict(posted_record(), event_type=2, message_edits=3, message_stars=2)

    event_type, event = decode_event(record)

    assert event_type is MESSAGE_EDITED
    assert event.edit_count == 3
    assert event.star_count == 2
    assert event.pinned is False


def test_decode_user_entered_and_left():
    entered_type, entered = decode_event(user_record(3, 5))
    left_type, left = decode_event(user_record(4, 5))

    assert entered_type is USER_ENTERED
    assert left_type is USER_LEFT
    assert isinstance(entered, UserEvent)
    assert entered.user_id == left.user_id == 5


def test_decode_unknown_code_returns_none():
    assert decode_event({"event_type": 5, "id": 1}) is None
    assert decode_event({}) is None


def test_event_type_codes_are_unique():
    assert sorted(EVENT_TYPES) == [1, 2, 3, 4, 6, 8, 10, 18]
    assert repr(MESSAGE_POSTED) == "EventType(MESSAGE_POSTED)"
