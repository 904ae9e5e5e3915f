#!/usr/bin/env python3
"""
Room Watcher

Small host application: joins a room with cookies taken from the
environment and logs every event received until interrupted.

Environment:
    CHATEXCHANGE_COOKIES: "name=value; name2=value2" cookie header of an
                          authenticated chat session
    CHATEXCHANGE_*: SessionConfig overrides (see config.py)
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Dict

from .client import ChatClient
from .config import ChatHost, SessionConfig
from .schemas.events import EVENT_TYPES

logger = logging.getLogger(__name__)


def parse_cookies(header: str) -> Dict[str, str]:
    """
    Parse a cookie header ("a=1; b=2") into a dict.

    Args:
        header: Cookie header value

    Returns:
        Mapping of cookie names to values
    """
    cookies = {}
    for part in header.split(";"):
        if "=" in part:
            name, value = part.split("=", 1)
            cookies[name.strip()] = value.strip()
    return cookies


async def watch_room(host: ChatHost, room_id: int, cookies: Dict[str, str]) -> None:
    """
    Join a room and log its events until cancelled.

    Args:
        host: Chat server
        room_id: Room to watch
        cookies: Authenticated session cookies
    """
    async with ChatClient(host, cookies, config=SessionConfig.from_env()) as client:
        room = await client.join_room(room_id)

        for event_type in EVENT_TYPES.values():

            def log_event(event, name=event_type.name):
                logger.info("%s: %s", name, event)

            room.add_event_listener(event_type, log_event)

        logger.info(
            "Watching room %s (%d users present)",
            room_id,
            len(room.current_user_ids),
        )
        await asyncio.Event().wait()


def main():
    """Main entry point for the room watcher."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Log the events of a chat room")
    parser.add_argument("room_id", type=int, help="Id of the room to watch")
    parser.add_argument(
        "--host",
        default=os.environ.get("CHATEXCHANGE_HOST", ChatHost.STACK_OVERFLOW.value),
        help="Chat host (stackoverflow.com, stackexchange.com, meta.stackexchange.com)",
    )
    args = parser.parse_args()

    cookies = parse_cookies(os.environ.get("CHATEXCHANGE_COOKIES", ""))
    if not cookies:
        print("Error: CHATEXCHANGE_COOKIES is not set")
        sys.exit(1)

    try:
        asyncio.run(watch_room(ChatHost.from_name(args.host), args.room_id, cookies))
    except KeyboardInterrupt:
        logger.info("Stopping room watcher...")
        sys.exit(0)


if __name__ == "__main__":
    main()
