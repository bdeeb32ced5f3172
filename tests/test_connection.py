import asyncio
import math

import pytest

from imchat.connection import Conn
from imchat.message import FrameType, Message


class FakeTransport:
    def __init__(self, incoming=()):
        self.incoming = list(incoming)
        self.sent = []
        self.close_calls = 0

    async def recv(self):
        if not self.incoming:
            raise ConnectionError("closed")
        return self.incoming.pop(0)

    async def send(self, data):
        self.sent.append(data)

    async def close(self):
        self.close_calls += 1


class FakeServer:
    def __init__(self):
        self.closed = []

    async def close(self, conn):
        self.closed.append(conn)
        await conn.close()


def make_conn(incoming=(), max_idle=math.inf):
    return Conn(FakeServer(), FakeTransport(incoming), max_idle)


def test_append_queues_new_data_message():
    conn = make_conn()
    msg = Message(frame_type=FrameType.DATA, id="m1")
    conn.append_msg_mq(msg)
    assert list(conn.read_messages) == [msg]
    assert conn.read_message_seq["m1"] is msg


def test_append_ignores_unknown_ack():
    conn = make_conn()
    conn.append_msg_mq(Message(frame_type=FrameType.ACK, id="m1", ack_seq=1))
    assert not conn.read_messages
    assert conn.read_message_seq == {}


def test_append_ignores_duplicate_sequence():
    conn = make_conn()
    first = Message(id="m1", ack_seq=1)
    conn.append_msg_mq(first)
    conn.append_msg_mq(Message(frame_type=FrameType.ACK, id="m1", ack_seq=1))
    assert conn.read_message_seq["m1"] is first
    assert len(conn.read_messages) == 1


def test_append_records_higher_ack_without_requeueing():
    conn = make_conn()
    first = Message(id="m1", ack_seq=1)
    conn.append_msg_mq(first)
    ack = Message(frame_type=FrameType.ACK, id="m1", ack_seq=2)
    conn.append_msg_mq(ack)
    assert conn.read_message_seq["m1"] is ack
    assert list(conn.read_messages) == [first]


def test_append_ignores_known_id_when_queue_empty():
    conn = make_conn()
    first = Message(id="m1", ack_seq=1)
    conn.append_msg_mq(first)
    conn.read_messages.popleft()
    conn.append_msg_mq(Message(frame_type=FrameType.ACK, id="m1", ack_seq=5))
    assert conn.read_message_seq["m1"] is first
    assert not conn.read_messages


def test_read_message_marks_busy():
    async def scenario():
        conn = make_conn(["hello"])
        data = await conn.read_message()
        return data, conn.idle

    data, idle = asyncio.run(scenario())
    assert data == "hello"
    assert idle is None


def test_read_error_propagates_and_marks_busy():
    async def scenario():
        conn = make_conn()
        with pytest.raises(ConnectionError):
            await conn.read_message()
        return conn.idle

    assert asyncio.run(scenario()) is None


def test_write_message_sends_and_restarts_idle_clock():
    async def scenario():
        conn = make_conn(["x"])
        await conn.read_message()
        await conn.write_message('{"frameType":1}')
        return conn.transport.sent, conn.idle

    sent, idle = asyncio.run(scenario())
    assert sent == ['{"frameType":1}']
    assert isinstance(idle, float)


def test_close_sets_done_and_is_repeatable():
    async def scenario():
        conn = make_conn()
        await conn.close()
        await conn.close()
        return conn.done.is_set(), conn.transport.close_calls

    done, calls = asyncio.run(scenario())
    assert done is True
    assert calls == 2


def test_keepalive_closes_idle_connection():
    async def scenario():
        conn = make_conn(max_idle=0.05)
        await conn.write_message("ping")
        await asyncio.wait_for(conn.keepalive(), timeout=2)
        return conn

    conn = asyncio.run(scenario())
    assert conn.server.closed == [conn]
    assert conn.done.is_set()


def test_keepalive_spares_busy_connection():
    async def scenario():
        conn = make_conn(["x"], max_idle=0.05)
        await conn.read_message()
        task = asyncio.ensure_future(conn.keepalive())
        await asyncio.sleep(0.2)
        closed_early = list(conn.server.closed)
        conn.done.set()
        await asyncio.wait_for(task, timeout=2)
        return closed_early, conn.server.closed

    closed_early, closed_after = asyncio.run(scenario())
    assert closed_early == []
    assert closed_after == []


def test_keepalive_returns_when_done():
    async def scenario():
        conn = make_conn()
        conn.done.set()
        await asyncio.wait_for(conn.keepalive(), timeout=2)
        return conn.server.closed

    assert asyncio.run(scenario()) == []