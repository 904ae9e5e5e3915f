"""
Tests for the Push Channel

Covers frame filtering by room, the connection state machine, the
inactivity watchdog and explicit, repeatable closing.
"""

import json

import pytest

from chatexchange import (
    ChannelState,
    EventDispatcher,
    MESSAGE_POSTED,
    PushChannel,
    SessionClosedError,
    TransportError,
)

from conftest import MockWebSocketFactory, frame, posted_record, wait_until

ORIGIN = "https://chat.stackoverflow.com"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def make_channel(room_id=123, factory=None, clock=None, on_events=None):
    urls = []

    async def url_provider():
        url = f"wss://chat.sockets.stackexchange.com/events/{room_id}/k?l={len(urls)}"
        urls.append(url)
        return url

    received = []
    channel = PushChannel(
        room_id,
        ORIGIN,
        url_provider,
        on_events or received.append,
        websocket_factory=factory or MockWebSocketFactory(),
        inactivity_threshold=30,
        clock=clock or FakeClock(),
    )
    return channel, received


# Frame handling Tests


def test_frame_for_this_room_is_forwarded():
    channel, received = make_channel(room_id=123)

    channel.handle_frame(frame(123, [posted_record()]))

    assert len(received) == 1
    assert received[0][0]["message_id"] == 5


def test_frame_for_other_room_is_ignored():
    channel, received = make_channel(room_id=456)

    channel.handle_frame(frame(123, [posted_record()]))

    assert received == []


def test_frame_with_several_rooms_forwards_only_own_events():
    channel, received = make_channel(room_id=123)
    data = {
        "r1": {"e": [posted_record(room_id=1, message_id=1)]},
        "r123": {"e": [posted_record(message_id=2)]},
    }

    channel.handle_frame(json.dumps(data))

    assert [r["message_id"] for r in received[0]] == [2]


def test_frame_without_events_is_ignored():
    channel, received = make_channel(room_id=123)

    channel.handle_frame(json.dumps({"r123": {"t": 10, "d": 1}}))
    channel.handle_frame(json.dumps({"r123": {"e": []}}))

    assert received == []


def test_malformed_frame_is_logged_not_raised():
    channel, received = make_channel()

    channel.handle_frame("{not json")
    channel.handle_frame("[1, 2]")

    assert received == []


def test_every_frame_updates_last_activity():
    clock = FakeClock()
    channel, _ = make_channel(room_id=123, clock=clock)

    clock.advance(12)
    channel.handle_frame(json.dumps({"r999": {}}))

    assert channel.last_activity == clock.now


@pytest.mark.asyncio
async def test_dispatch_scenario_for_bound_room():
    """A frame for room 123 yields one MESSAGE_POSTED; room 456 yields none."""
    results = {}
    test_frame = frame(123, [posted_record()])
    for room_id in (123, 456):
        dispatcher = EventDispatcher()
        received = []
        dispatcher.add_listener(MESSAGE_POSTED, received.append)
        channel, _ = make_channel(room_id=room_id, on_events=dispatcher.dispatch)

        channel.handle_frame(test_frame)
        await dispatcher.join()

        results[room_id] = received
        dispatcher.shutdown()

    assert len(results[123]) == 1
    assert results[123][0].message_id == 5
    assert results[456] == []


# Connection Tests


@pytest.mark.asyncio
async def test_connect_uses_fresh_url_and_origin():
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory)

    assert channel.state is ChannelState.DISCONNECTED
    await channel.connect()

    assert channel.state is ChannelState.CONNECTED
    assert factory.latest.url.endswith("?l=0")
    assert factory.latest.origin == ORIGIN
    await channel.shutdown()


@pytest.mark.asyncio
async def test_connect_when_connected_is_a_no_op():
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory)

    await channel.connect()
    await channel.connect()

    assert len(factory.sockets) == 1
    await channel.shutdown()


@pytest.mark.asyncio
async def test_received_frames_reach_the_handler():
    factory = MockWebSocketFactory()
    channel, received = make_channel(room_id=123, factory=factory)
    await channel.connect()

    factory.latest.push(frame(123, [posted_record()]))
    await wait_until(lambda: received)

    assert received[0][0]["event_type"] == 1
    await channel.shutdown()


@pytest.mark.asyncio
async def test_connect_failure_leaves_channel_disconnected():
    factory = MockWebSocketFactory()
    factory.fail_with = OSError("connection refused")
    channel, _ = make_channel(factory=factory)

    with pytest.raises(TransportError):
        await channel.connect()

    assert channel.state is ChannelState.DISCONNECTED


@pytest.mark.asyncio
async def test_server_close_does_not_change_state():
    """Only an explicit close or the watchdog changes the state."""
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory)
    await channel.connect()

    factory.latest.frames.put_nowait(None)
    await wait_until(lambda: channel._receiver.done())

    assert channel.state is ChannelState.CONNECTED
    await channel.shutdown()


# Watchdog Tests


@pytest.mark.asyncio
async def test_watchdog_keeps_active_channel():
    clock = FakeClock()
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory, clock=clock)
    await channel.connect()

    clock.advance(30)
    reconnected = await channel.watchdog_tick()

    assert reconnected is False
    assert len(factory.sockets) == 1
    await channel.shutdown()


@pytest.mark.asyncio
async def test_watchdog_reconnects_silent_channel():
    clock = FakeClock()
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory, clock=clock)
    await channel.connect()
    first = factory.latest

    clock.advance(31)
    reconnected = await channel.watchdog_tick()

    assert reconnected is True
    assert first.closed
    assert len(factory.sockets) == 2
    assert factory.latest.url.endswith("?l=1")
    assert channel.state is ChannelState.CONNECTED
    assert channel.reconnect_count == 1
    await channel.shutdown()


@pytest.mark.asyncio
async def test_watchdog_retries_after_failed_connect():
    clock = FakeClock()
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory, clock=clock)
    factory.fail_with = OSError("down")
    with pytest.raises(TransportError):
        await channel.connect()

    factory.fail_with = None
    clock.advance(31)
    await channel.watchdog_tick()

    assert channel.state is ChannelState.CONNECTED
    await channel.shutdown()


@pytest.mark.asyncio
async def test_watchdog_ignores_closed_channel():
    clock = FakeClock()
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory, clock=clock)
    await channel.connect()
    await channel.shutdown()

    clock.advance(100)

    assert await channel.watchdog_tick() is False
    assert len(factory.sockets) == 1


# Close Tests


@pytest.mark.asyncio
async def test_close_is_safe_when_never_connected():
    channel, _ = make_channel()

    await channel.close()
    await channel.close()

    assert channel.state is ChannelState.DISCONNECTED


@pytest.mark.asyncio
async def test_shutdown_is_terminal():
    factory = MockWebSocketFactory()
    channel, _ = make_channel(factory=factory)
    await channel.connect()

    await channel.shutdown()
    await channel.shutdown()

    assert channel.state is ChannelState.CLOSED
    assert factory.latest.closed
    with pytest.raises(SessionClosedError):
        await channel.connect()
