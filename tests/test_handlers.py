import asyncio
import json

from imchat.connection import Conn
from imchat.handlers import online, online_routes
from imchat.message import Message
from imchat.options import HandshakeRequest, ServerOptions
from imchat.server import Server


class FakeTransport:
    def __init__(self, fail=False):
        self.sent = []
        self.closed = False
        self.fail = fail

    async def send(self, data):
        if self.fail:
            raise ConnectionError("broken")
        self.sent.append(data)

    async def recv(self):
        raise ConnectionError("closed")

    async def close(self):
        self.closed = True


def _run_online(fail=False):
    async def scenario():
        server = Server("127.0.0.1:9000", ServerOptions())
        first = Conn(server, FakeTransport(fail=fail))
        second = Conn(server, FakeTransport())
        await server.add_conn(first, HandshakeRequest(path="/ws?userId=u1"))
        await server.add_conn(second, HandshakeRequest(path="/ws?userId=u2"))
        await online(server, first, Message(method="user.online"))
        return first.transport, second.transport

    return asyncio.run(scenario())


def test_online_replies_with_all_users():
    first, second = _run_online()
    assert len(first.sent) == 1
    assert second.sent == []
    reply = json.loads(first.sent[0])
    assert reply["formId"] == "[u1]"
    assert reply["data"] == ["[u1]", "[u2]"]
    assert reply["frameType"] == 0


def test_online_swallows_send_failure():
    first, second = _run_online(fail=True)
    assert first.sent == []
    assert second.sent == []


def test_online_routes_register_user_online():
    routes = online_routes()
    assert [route.method for route in routes] == ["user.online"]
    server = Server("127.0.0.1:9000", ServerOptions())
    server.add_routes(routes)
    assert server.routes["user.online"] is online