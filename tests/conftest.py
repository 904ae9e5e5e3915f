"""
Shared test doubles for the chat session tests.

MockHttp stands in for the aiohttp transport, MockWebSocket and
MockWebSocketFactory for the push socket.
"""

import asyncio
import json

import pytest

from chatexchange import ChatHost, HttpResponse

BASE_URL = ChatHost.STACK_OVERFLOW.base_url
ROOM_ID = 123

ROOM_PAGE = """<html><head>
<script src="/js/master.js"></script>
<script>var room = 123;</script>
<script>var chat = {};</script>
<script>
CHAT.RoomUsers.initPresent([{id: 100, name: "alice", reputation: 10},
{id: 200, name: "bob", reputation: 20}, {id: 100, name: "alice"}]);
</script>
</head><body>
<input id="fkey" name="fkey" type="hidden" value="abc123" />
</body></html>"""

PINGABLE = json.dumps([[1, "carol", 1700000000, 1700000000], [2, "dave", 1700000000, 1700000000]])


def posted_record(room_id=ROOM_ID, message_id=5, user_id=100, content="hello"):
    """Raw MESSAGE_POSTED record as sent by the server."""
    return {
        "event_type": 1,
        "time_stamp": 1700000000,
        "content": content,
        "id": 900,
        "user_id": user_id,
        "user_name": "alice",
        "room_id": room_id,
        "room_name": "Sandbox",
        "message_id": message_id,
    }


def user_record(event_type, user_id, room_id=ROOM_ID):
    """Raw USER_ENTERED (3) / USER_LEFT (4) record."""
    return {
        "event_type": event_type,
        "time_stamp": 1700000000,
        "id": 901,
        "user_id": user_id,
        "user_name": f"user{user_id}",
        "room_id": room_id,
        "room_name": "Sandbox",
    }


def frame(room_id, records):
    """Serialize a push frame for one room."""
    return json.dumps({f"r{room_id}": {"e": records, "t": 1, "d": 1}})


async def wait_until(predicate, timeout=2.0):
    """Poll predicate until true, failing the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


class MockHttp:
    """
    Scripted transport.

    Routes map a path (URL without the host) to a reply. A reply can be a
    str (200 response), an HttpResponse, an exception to raise, a callable
    taking the request fields, or a list of replies consumed in order (the
    last one repeats).
    """

    def __init__(self, gets=None, posts=None):
        self.gets = dict(gets or {})
        self.posts = dict(posts or {})
        self.get_calls = []
        self.post_calls = []
        self.closed = False

    async def get(self, url, cookies=None, params=None):
        self.get_calls.append((url, params))
        return self._answer(self.gets, url, params)

    async def post(self, url, cookies=None, data=None):
        self.post_calls.append((url, data))
        return self._answer(self.posts, url, data)

    async def close(self):
        self.closed = True

    def posts_to(self, path):
        """Form fields of every POST made to a path."""
        return [data for url, data in self.post_calls if url == BASE_URL + path]

    @staticmethod
    def _answer(routes, url, fields):
        path = url[len(BASE_URL):] if url.startswith(BASE_URL) else url
        if path not in routes:
            raise AssertionError(f"Unexpected request to {path}")
        reply = routes[path]
        if isinstance(reply, list):
            reply = reply.pop(0) if len(reply) > 1 else reply[0]
        if callable(reply) and not isinstance(reply, type):
            reply = reply(fields)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, str):
            return HttpResponse(status=200, text=reply, url=url)
        return reply


class MockWebSocket:
    """Mock push socket yielding frames pushed into its queue."""

    def __init__(self, url, origin):
        self.url = url
        self.origin = origin
        self.frames = asyncio.Queue()
        self.closed = False

    def push(self, data):
        self.frames.put_nowait(data)

    def __aiter__(self):
        return self

    async def __anext__(self):
        data = await self.frames.get()
        if data is None:
            raise StopAsyncIteration
        return data

    async def close(self):
        self.closed = True
        self.frames.put_nowait(None)


class MockWebSocketFactory:
    """Records every connection attempt and hands out MockWebSockets."""

    def __init__(self):
        self.sockets = []
        self.fail_with = None

    async def __call__(self, url, origin=None):
        if self.fail_with is not None:
            raise self.fail_with
        websocket = MockWebSocket(url, origin)
        self.sockets.append(websocket)
        return websocket

    @property
    def latest(self):
        return self.sockets[-1]


def room_routes():
    """Routes needed to open a session in ROOM_ID."""
    gets = {
        f"/rooms/{ROOM_ID}": ROOM_PAGE,
        f"/rooms/pingable/{ROOM_ID}": PINGABLE,
    }
    posts = {
        "/ws-auth": json.dumps({"url": "wss://chat.sockets.stackexchange.com/events/123/xyz"}),
        f"/chats/{ROOM_ID}/events": json.dumps({"events": [], "time": 555, "sync": 555}),
    }
    return gets, posts


@pytest.fixture
def mock_http():
    gets, posts = room_routes()
    return MockHttp(gets, posts)


@pytest.fixture
def socket_factory():
    return MockWebSocketFactory()
