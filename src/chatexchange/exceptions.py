"""
Chat Session Errors

Every error raised by the session derives from ChatError so host
applications can catch the whole family with one clause.
"""

from typing import Optional


class ChatError(Exception):
    """Base class for all chat session errors."""


class TransportError(ChatError):
    """A network or I/O failure while talking to the chat server."""


class HttpStatusError(TransportError):
    """
    The server answered a read request with a non-success status.

    Attributes:
        status: HTTP status code returned by the server
        url: URL that was requested
    """

    def __init__(self, status: int, url: str):
        super().__init__(f"HTTP {status} for {url}")
        self.status = status
        self.url = url


class OperationError(ChatError):
    """
    The server rejected an action or did not acknowledge it.

    Attributes:
        body: Raw response body returned by the server, if any
    """

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message)
        self.body = body


class ThrottledError(OperationError):
    """
    The server kept throttling an action after every retry was used.

    Attributes:
        retry_after: Delay (seconds) requested by the last throttle response
    """

    def __init__(self, message: str, body: str, retry_after: int):
        super().__init__(message, body)
        self.retry_after = retry_after


class SessionClosedError(ChatError):
    """An action was issued on a room session that has been closed."""
