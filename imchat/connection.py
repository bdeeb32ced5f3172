"""One client connection on the websocket server."""

from __future__ import annotations

import asyncio
import inspect
import math
import time
from collections import deque
from typing import Any

from imchat.message import DEFAULT_MAX_CONNECTION_IDLE, FrameType, Message


class Conn:
    """A websocket connection with idle tracking and an acknowledgement queue.

    ``transport`` is an open websocket offering async ``recv``, ``send`` and
    ``close``. ``read_messages`` holds frames awaiting acknowledgement, in
    arrival order, and ``read_message_seq`` the latest frame seen per id.
    Frames ready for handling go through ``messages``; ``done`` is set once
    the connection is closed.
    """

    def __init__(
        self,
        server: Any,
        transport: Any,
        max_connection_idle: float = DEFAULT_MAX_CONNECTION_IDLE,
    ) -> None:
        self.uid = ""
        self.server = server
        self.transport = transport
        self.max_connection_idle = max_connection_idle
        self.idle: float | None = time.monotonic()
        self.read_messages: deque[Message] = deque()
        self.read_message_seq: dict[str, Message] = {}
        self.messages: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.done = asyncio.Event()
        self._write_lock = asyncio.Lock()

    def append_msg_mq(self, msg: Message) -> None:
        """Queue a frame for acknowledgement, dropping duplicates and stale acks."""
        known = self.read_message_seq.get(msg.id)
        if known is not None:
            if not self.read_messages:
                return
            if known.ack_seq >= msg.ack_seq:
                return
            self.read_message_seq[msg.id] = msg
            return
        if msg.frame_type == FrameType.ACK:
            return
        self.read_messages.append(msg)
        self.read_message_seq[msg.id] = msg

    async def read_message(self) -> str | bytes:
        """Receive the next raw frame; the connection counts as busy afterwards."""
        try:
            return await self.transport.recv()
        finally:
            self.idle = None

    async def write_message(self, data: str | bytes) -> None:
        """Send a raw frame; writes are serialised and restart the idle clock."""
        async with self._write_lock:
            try:
                await self.transport.send(data)
            finally:
                self.idle = time.monotonic()

    async def close(self) -> None:
        """Mark the connection done and close the websocket."""
        self.done.set()
        await self.transport.close()

    async def _wait_done(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(
                self.done.wait(), None if math.isinf(timeout) else timeout
            )
        except asyncio.TimeoutError:
            return False
        return True

    async def keepalive(self) -> None:
        """Ask the server to close the connection once it has idled too long."""
        timeout = self.max_connection_idle
        while True:
            if await self._wait_done(timeout):
                return
            if self.idle is None:
                timeout = self.max_connection_idle
                continue
            remaining = self.max_connection_idle - (time.monotonic() - self.idle)
            if remaining <= 0:
                result = self.server.close(self)
                if inspect.isawaitable(result):
                    await result
                return
            timeout = remaining