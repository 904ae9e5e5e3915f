"""
Session Configuration

Default timings and limits for a room session, the known chat hosts,
and a SessionConfig dataclass that can be overridden from the environment.
"""

import os
from dataclasses import dataclass, fields
from enum import Enum

# Defaults
THROTTLE_RETRIES = 5  # retries before a throttled action fails
TOKEN_REFRESH_INTERVAL = 3600  # seconds between fkey refreshes
PINGABLE_SYNC_INTERVAL = 86400  # seconds between pingable roster resyncs
WATCHDOG_INTERVAL = 30  # seconds between push channel checks
# Silence longer than this is treated as a dead push connection. The server
# normally emits traffic more often; this is a heuristic, not a guarantee.
INACTIVITY_THRESHOLD = 30
EDIT_WINDOW_SECONDS = 115  # seconds during which a message can be edited
# Upper bound on listener threads. Threads are started on demand and idle
# ones are reused, so the pool only grows to the number of concurrently
# blocked listeners.
LISTENER_POOL_SIZE = 1024
HTTP_TIMEOUT = 30  # seconds per HTTP request

ENV_PREFIX = "CHATEXCHANGE_"


class ChatHost(Enum):
    """Chat servers of the Stack Exchange network."""

    STACK_OVERFLOW = "stackoverflow.com"
    STACK_EXCHANGE = "stackexchange.com"
    META_STACK_EXCHANGE = "meta.stackexchange.com"

    @property
    def base_url(self) -> str:
        """Base URL of the chat server (e.g. https://chat.stackoverflow.com)."""
        return f"https://chat.{self.value}"

    @classmethod
    def from_name(cls, name: str) -> "ChatHost":
        """
        Look up a host by its domain name.

        Args:
            name: Domain name such as "stackoverflow.com"

        Returns:
            The matching ChatHost

        Raises:
            ValueError: If the name is not a known chat host
        """
        for host in cls:
            if host.value == name.lower():
                return host
        raise ValueError(f"Unknown chat host: {name}")


@dataclass
class SessionConfig:
    """
    Timings and limits used by a room session.

    Attributes:
        throttle_retries: Retries on a throttle response before failing
        token_refresh_interval: Seconds between anti-abuse token refreshes
        pingable_sync_interval: Seconds between pingable roster resyncs
        watchdog_interval: Seconds between push channel inactivity checks
        inactivity_threshold: Seconds of silence before reconnecting
        edit_window: Seconds after posting during which edits are allowed
        listener_pool_size: Worker threads for blocking listeners
        http_timeout: Seconds before an HTTP request is abandoned
    """

    throttle_retries: int = THROTTLE_RETRIES
    token_refresh_interval: float = TOKEN_REFRESH_INTERVAL
    pingable_sync_interval: float = PINGABLE_SYNC_INTERVAL
    watchdog_interval: float = WATCHDOG_INTERVAL
    inactivity_threshold: float = INACTIVITY_THRESHOLD
    edit_window: int = EDIT_WINDOW_SECONDS
    listener_pool_size: int = LISTENER_POOL_SIZE
    http_timeout: float = HTTP_TIMEOUT

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """
        Build a config from CHATEXCHANGE_* environment variables.

        Unset variables keep their defaults, e.g.
        CHATEXCHANGE_INACTIVITY_THRESHOLD=60 raises the watchdog threshold.
        """
        config = cls()
        for field in fields(cls):
            raw = os.environ.get(ENV_PREFIX + field.name.upper())
            if raw is not None:
                setattr(config, field.name, field.type(raw))
        return config
