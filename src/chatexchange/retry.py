"""
Throttle-Aware Poster

Every mutating call to the chat server goes through RetryPoster. It adds
the current anti-abuse token (fkey) to the form fields, and when the server
answers "You can perform this action again in N seconds" it waits N seconds
and resubmits, up to a fixed number of retries.
"""

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import THROTTLE_RETRIES
from .exceptions import OperationError, ThrottledError
from .transport import HttpClient

logger = logging.getLogger(__name__)

SUCCESS = "ok"
TRY_AGAIN_PATTERN = re.compile(
    r"You can perform this action again in (\d+) seconds"
)


def parse_body(text: str) -> Any:
    """
    Parse a response body as JSON, falling back to the stripped raw text.

    Acknowledgments come back either as the JSON string "ok" or as bare ok.
    """
    try:
        return json.loads(text)
    except ValueError:
        return text.strip()


def expect_ok(result: Any, action: str) -> None:
    """
    Check that an action was acknowledged by the server.

    Args:
        result: Parsed response of the action
        action: Description used in the error, e.g. "edit message 42"

    Raises:
        OperationError: If the result is not the success marker
    """
    if result != SUCCESS:
        raise OperationError(f"Cannot {action}. Reason: {result}", str(result))


class RetryPoster:
    """
    Issues form POSTs with the anti-abuse token and retries on throttling.

    Only throttle responses are retried. Transport failures and any other
    rejection are raised on the first occurrence.
    """

    def __init__(
        self,
        http: HttpClient,
        cookies: Dict[str, str],
        token_provider: Callable[[], Optional[str]],
        retries: int = THROTTLE_RETRIES,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize the poster.

        Args:
            http: Transport used for the requests
            cookies: Session cookies sent with every request
            token_provider: Returns the current fkey; read on every attempt
            retries: Retries allowed after the first throttled attempt
            sleep: Coroutine used to wait out a throttle (injectable for tests)
        """
        self._http = http
        self._cookies = cookies
        self._token_provider = token_provider
        self._retries = retries
        self._sleep = sleep

    async def execute(
        self, url: str, data: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        POST to a mutating endpoint.

        Args:
            url: Endpoint URL
            data: Form fields, without the fkey

        Returns:
            The parsed response body

        Raises:
            TransportError: On network failure (not retried)
            ThrottledError: If every retry was throttled
            OperationError: If the server rejected the call
        """
        retries_left = self._retries
        while True:
            fields = {"fkey": self._token_provider()}
            fields.update(data or {})
            response = await self._http.post(
                url, cookies=self._cookies, data=fields
            )
            body = response.text
            if response.status == 200:
                return parse_body(body)

            match = TRY_AGAIN_PATTERN.search(body)
            if match is None:
                raise OperationError(
                    f"The chat operation failed with the message: {body}", body
                )

            delay = int(match.group(1))
            if retries_left <= 0:
                raise ThrottledError(
                    f"The chat operation was still throttled after "
                    f"{self._retries} retries: {body}",
                    body,
                    delay,
                )

            logger.debug(
                "Tried to POST to %s with data %s but was throttled, "
                "retrying in %s seconds",
                url,
                data,
                delay,
            )
            await self._sleep(delay)
            retries_left -= 1
