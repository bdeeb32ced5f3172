"""A websocket client that reconnects once when a send fails."""

from __future__ import annotations

import json
from typing import Any

from imchat.message import Message
from imchat.options import DialOptions

try:
    from websockets.asyncio.client import connect as _ws_connect

    _HEADER_KEYWORD = "additional_headers"
except ImportError:  # older websockets releases
    from websockets.client import connect as _ws_connect

    _HEADER_KEYWORD = "extra_headers"


def _to_plain(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


class Client:
    """Talks JSON frames to a chat server at ``host``."""

    def __init__(self, host: str, options: DialOptions | None = None) -> None:
        self.host = host
        self.opt = options if options is not None else DialOptions()
        self.discover = self.opt.discover
        self.conn: Any = None

    @property
    def url(self) -> str:
        return f"ws://{self.host}{self.opt.pattern}"

    async def dial(self) -> Any:
        """Open a new websocket to the server and make it current."""
        headers = dict(self.opt.header) if self.opt.header else None
        self.conn = await _ws_connect(self.url, **{_HEADER_KEYWORD: headers})
        return self.conn

    async def send(self, value: Any) -> None:
        """Send ``value`` as JSON, redialling once if the write fails."""
        if isinstance(value, Message):
            data = value.to_json()
        else:
            data = json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=_to_plain)
        if self.conn is None:
            await self.dial()
        try:
            await self.conn.send(data)
            return
        except Exception:
            pass
        await self.dial()
        await self.conn.send(data)

    async def send_uid(self, value: Any, *args: str) -> None:
        """Forward through the discover service if one is set, else send directly."""
        if self.discover is not None:
            await self.discover.transpond(value, *args)
            return
        await self.send(value)

    async def read(self) -> Any:
        """Receive one frame and return it decoded from JSON."""
        if self.conn is None:
            await self.dial()
        return json.loads(await self.conn.recv())

    async def close(self) -> None:
        """Close the current websocket, if any."""
        if self.conn is not None:
            await self.conn.close()
            self.conn = None