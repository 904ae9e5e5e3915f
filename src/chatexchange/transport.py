"""
HTTP Transport

Thin aiohttp wrapper used by the room session for every request/response
exchange with the chat server. Library exceptions are converted into
TransportError so callers only deal with the session's error family.

Usage:
    http = HttpClient(timeout=30)
    response = await http.get(url, cookies=cookies, params={"fkey": fkey})
    await http.close()
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .exceptions import HttpStatusError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """
    Response returned by the transport.

    Attributes:
        status: HTTP status code
        text: Decoded response body
        url: URL that was requested
    """

    status: int
    text: str
    url: str = ""

    @property
    def ok(self) -> bool:
        """True for a 2xx status."""
        return 200 <= self.status < 300


class HttpClient:
    """
    Request/response collaborator backed by one aiohttp ClientSession.

    The underlying session is created lazily on first use so the client can
    be constructed outside of a running event loop.
    """

    def __init__(
        self,
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the HTTP client.

        Args:
            timeout: Total timeout in seconds for each request
            session: Optional pre-built ClientSession (for injection/testing)
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def get(
        self,
        url: str,
        cookies: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> HttpResponse:
        """
        Issue a GET request.

        Args:
            url: Absolute URL to fetch
            cookies: Session cookies sent with the request
            params: Query string parameters

        Returns:
            HttpResponse with the decoded body

        Raises:
            HttpStatusError: If the server answers with 4xx/5xx
            TransportError: On network failure or timeout
        """
        response = await self._request("GET", url, cookies, params=params)
        if not response.ok:
            raise HttpStatusError(response.status, url)
        return response

    async def post(
        self,
        url: str,
        cookies: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> HttpResponse:
        """
        Issue a form POST, returning the response whatever its status.

        Throttle responses carry a non-success status with a meaningful
        body, so status handling is left to the caller.

        Args:
            url: Absolute URL to post to
            cookies: Session cookies sent with the request
            data: Form fields

        Returns:
            HttpResponse with the decoded body

        Raises:
            TransportError: On network failure or timeout
        """
        return await self._request("POST", url, cookies, data=data)

    async def _request(
        self,
        method: str,
        url: str,
        cookies: Optional[Dict[str, str]],
        **kwargs: Any,
    ) -> HttpResponse:
        logger.debug("%s %s", method, url)
        try:
            async with self._get_session().request(
                method, url, cookies=cookies, **kwargs
            ) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, text=text, url=url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("%s %s failed: %s", method, url, e)
            raise TransportError(f"{method} {url} failed: {e}") from e

    async def close(self) -> None:
        """Release the underlying connection pool."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
