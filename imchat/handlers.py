"""Route handlers about users."""

from __future__ import annotations

import logging
from typing import Any

from imchat.message import Message, Route, new_message

logger = logging.getLogger(__name__)


async def online(server: Any, conn: Any, msg: Message) -> None:
    """Reply to ``conn`` with the list of every connected user."""
    uids = server.get_users()
    own = server.get_users(conn)
    try:
        await server.send(new_message(own[0], uids), conn)
    except Exception as exc:
        logger.info("err %s", exc)


def online_routes() -> list[Route]:
    """Return the routes served by this module."""
    return [Route(method="user.online", handler=online)]