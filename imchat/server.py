"""The websocket chat server: connection registry, routing and acknowledgements."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Iterable
from urllib.parse import urlsplit

from imchat.connection import Conn
from imchat.discover import Discover, NopDiscover
from imchat.ip import figure_out_listen_on
from imchat.message import FrameType, HandlerFunc, Message, Route
from imchat.options import AckType, HandshakeRequest, ServerOptions

try:
    from websockets.asyncio.server import serve as _ws_serve
except ImportError:  # older websockets releases
    from websockets.server import serve as _ws_serve

logger = logging.getLogger(__name__)

_EMPTY_QUEUE_PAUSE = 0.0001
_RIGOR_RESEND_PAUSE = 3.0


def _to_plain(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def marshal(msg: Any) -> str:
    """Serialise a frame or any JSON-compatible value to compact JSON."""
    if isinstance(msg, Message):
        return msg.to_json()
    return json.dumps(msg, ensure_ascii=False, separators=(",", ":"), default=_to_plain)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Server:
    """Accepts websocket connections, tracks users and dispatches frames to routes."""

    def __init__(self, addr: str, options: ServerOptions | None = None) -> None:
        self.opt = options if options is not None else ServerOptions()
        self.addr = addr
        self.pattern = self.opt.pattern
        self.authentication = self.opt.authentication
        self.discover: Discover = self.opt.discover or NopDiscover()
        self.routes: dict[str, HandlerFunc] = {}
        self.conn_to_user: dict[Conn, str] = {}
        self.user_to_conn: dict[str, Conn] = {}
        self.listen_on = figure_out_listen_on(addr)
        self._semaphore: asyncio.Semaphore | None = None
        self._tasks: set[asyncio.Task] = set()
        logger.info("server start on %s", self.listen_on)

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def serve_ws(self, transport: Any, request: HandshakeRequest) -> None:
        """Serve one upgraded websocket until it closes."""
        conn = Conn(self, transport, self.opt.max_connection_idle)
        self._spawn(conn.keepalive())
        try:
            if not self.authentication.auth(request):
                await self.send(Message(frame_type=FrameType.DATA, data="access denied"), conn)
                await conn.close()
                return
            await self.add_conn(conn, request)
            await self.handle_conn(conn)
        except Exception:
            logger.exception("server handler ws failed")

    async def handle_conn(self, conn: Conn) -> None:
        """Read frames from ``conn`` until it fails, queueing them for handling."""
        uids = self.get_users(conn)
        conn.uid = uids[0]
        await _maybe_await(self.discover.bound_user(conn.uid))

        self._spawn(self.handle_write(conn))
        if self.is_ack(None):
            self._spawn(self.read_ack(conn))

        while True:
            try:
                raw = await conn.read_message()
            except Exception as exc:
                logger.error("websocket conn read message err %s", exc)
                await self.close(conn)
                return
            try:
                message = Message.from_json(raw)
            except ValueError as exc:
                logger.error("json unmarshal err %s, msg %r", exc, raw)
                continue
            if self.is_ack(message):
                logger.info("conn message read ack msg %s", message)
                conn.append_msg_mq(message)
            else:
                await conn.messages.put(message)

    def is_ack(self, message: Message | None) -> bool:
        """Tell whether acknowledgement applies, to the server or to one frame."""
        if message is None:
            return self.opt.ack != AckType.NO_ACK
        return self.opt.ack != AckType.NO_ACK and message.frame_type not in (
            FrameType.NO_ACK,
            FrameType.TRANSPOND,
        )

    async def read_ack(self, conn: Conn) -> None:
        """Acknowledge queued frames of ``conn`` and release confirmed ones."""
        while not conn.done.is_set():
            if not conn.read_messages:
                await asyncio.sleep(_EMPTY_QUEUE_PAUSE)
                continue
            message = conn.read_messages[0]
            if self.opt.ack == AckType.ONLY_ACK:
                await self.send(
                    Message(frame_type=FrameType.ACK, id=message.id, ack_seq=message.ack_seq + 1),
                    conn,
                )
                conn.read_messages.popleft()
                await conn.messages.put(message)
            elif self.opt.ack == AckType.RIGOR_ACK:
                if message.ack_seq == 0:
                    message.ack_seq += 1
                    message.ack_time = time.monotonic()
                    await self.send(
                        Message(frame_type=FrameType.ACK, id=message.id, ack_seq=message.ack_seq),
                        conn,
                    )
                    continue
                latest = conn.read_message_seq.get(message.id)
                if latest is not None and latest.ack_seq > message.ack_seq:
                    conn.read_messages.popleft()
                    await conn.messages.put(message)
                    continue
                if message.ack_time is not None and (
                    time.monotonic() - message.ack_time >= self.opt.ack_timeout
                ):
                    conn.read_message_seq.pop(message.id, None)
                    conn.read_messages.popleft()
                    continue
                await self.send(
                    Message(frame_type=FrameType.ACK, id=message.id, ack_seq=message.ack_seq),
                    conn,
                )
                await asyncio.sleep(_RIGOR_RESEND_PAUSE)
            else:
                return

    async def handle_write(self, conn: Conn) -> None:
        """Handle frames queued on ``conn`` until it is closed."""
        done_waiter = asyncio.ensure_future(conn.done.wait())
        try:
            while True:
                getter = asyncio.ensure_future(conn.messages.get())
                await asyncio.wait({getter, done_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if not getter.done():
                    getter.cancel()
                    return
                message: Message = getter.result()
                if message.frame_type == FrameType.PING:
                    await self.send(Message(frame_type=FrameType.PING), conn)
                elif message.frame_type == FrameType.DATA:
                    handler = self.routes.get(message.method)
                    if handler is not None:
                        await _maybe_await(handler(self, conn, message))
                    else:
                        await self.send(
                            Message(
                                frame_type=FrameType.DATA,
                                data=f"no handler for method {message.method}",
                            ),
                            conn,
                        )
                if self.is_ack(message):
                    conn.read_message_seq.pop(message.id, None)
        finally:
            done_waiter.cancel()

    async def add_conn(self, conn: Conn, request: HandshakeRequest) -> None:
        """Register ``conn`` for its user, closing that user's previous connection."""
        uid = self.authentication.user_id(request)
        previous = self.user_to_conn.get(uid)
        if previous is not None:
            await previous.close()
        self.conn_to_user[conn] = uid
        self.user_to_conn[uid] = conn

    def get_conn(self, uid: str) -> Conn | None:
        """Return the connection of ``uid``, or None if the user is offline."""
        return self.user_to_conn.get(uid)

    def get_conns(self, *args: str) -> list[Conn | None]:
        """Return the connections of the given users, None for offline ones."""
        return [self.user_to_conn.get(uid) for uid in args]

    def get_users(self, *args: Conn) -> list[str]:
        """Return the users of the given connections, or of all when none given."""
        if not args:
            return list(self.conn_to_user.values())
        return [self.conn_to_user.get(conn, "") for conn in args]

    async def close(self, conn: Conn) -> None:
        """Forget ``conn`` and close it; closing twice does nothing."""
        uid = self.conn_to_user.get(conn, "")
        if not uid:
            return
        del self.conn_to_user[conn]
        if self.user_to_conn.get(uid) is conn:
            del self.user_to_conn[uid]
        await conn.close()

    async def send_by_user_id(self, msg: Any, *args: str) -> None:
        """Send ``msg`` to every online user among ``args``."""
        if not args:
            return
        await self.send(msg, *self.get_conns(*args))

    async def send(self, msg: Any, *args: Conn | None) -> None:
        """Serialise ``msg`` once and write it to each given connection."""
        conns = [conn for conn in args if conn is not None]
        if not conns:
            return
        data = marshal(msg)
        for conn in conns:
            await conn.write_message(data)

    def add_routes(self, routes: Iterable[Route]) -> None:
        """Bind each route's method to its handler."""
        for route in routes:
            self.routes[route.method] = route.handler

    def schedule(self, task: Callable[[], Any]) -> asyncio.Task:
        """Run ``task`` in the background, at most ``concurrency`` at a time."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(max(1, self.opt.concurrency))
        semaphore = self._semaphore

        async def run() -> Any:
            async with semaphore:
                return await _maybe_await(task())

        return self._spawn(run())

    async def _handle_socket(self, websocket: Any, *_: Any) -> None:
        request = getattr(websocket, "request", None)
        if request is not None:
            path, headers = request.path, request.headers
        else:
            path = getattr(websocket, "path", "/")
            headers = getattr(websocket, "request_headers", {})
        if urlsplit(path).path != self.pattern:
            await websocket.close()
            return
        await self.serve_ws(websocket, HandshakeRequest(path=path, headers=dict(headers)))

    async def start(self) -> None:
        """Listen on ``addr`` and serve until cancelled."""
        host, _, port = self.addr.rpartition(":")
        async with _ws_serve(self._handle_socket, host or None, int(port)):
            await asyncio.Future()

    def stop(self) -> None:
        """Cancel the server's background tasks."""
        logger.info("stopping server")
        for task in list(self._tasks):
            task.cancel()