"""Finding which server holds a user, for forwarding between servers."""

from __future__ import annotations

import abc
import logging
from typing import Any, Callable, Mapping

import redis

from imchat.message import FrameType, Message
from imchat.options import DialOptions

logger = logging.getLogger(__name__)


class Discover(abc.ABC):
    """Registers servers and users, and forwards frames to a user's server."""

    @abc.abstractmethod
    async def register(self, server_addr: str) -> None:
        """Announce this server at ``server_addr``."""

    @abc.abstractmethod
    async def bound_user(self, uid: str) -> None:
        """Bind ``uid`` to this server."""

    @abc.abstractmethod
    async def relieve_user(self, uid: str) -> None:
        """Remove the binding of ``uid``."""

    @abc.abstractmethod
    async def transpond(self, msg: Any, *args: str) -> None:
        """Forward ``msg`` to the servers holding the given users."""


class NopDiscover(Discover):
    """A single-server setup: nothing to register or forward."""

    def __init__(self) -> None:
        self.server_addr = ""

    async def register(self, server_addr: str) -> None:
        return None

    async def bound_user(self, uid: str) -> None:
        return None

    async def relieve_user(self, uid: str) -> None:
        return None

    async def transpond(self, msg: Any, *args: str) -> None:
        return None


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


class RedisDiscover(Discover):
    """Keeps server and user bindings in redis.

    ``redis_client`` is a redis client or a redis URL. ``client_factory``
    builds a client for a server address; by default a websocket client
    dialling with the ``auth`` headers.
    """

    def __init__(
        self,
        auth: Mapping[str, str] | None,
        srv_key: str,
        redis_client: Any,
        client_factory: Callable[[str], Any] | None = None,
    ) -> None:
        if isinstance(redis_client, str):
            redis_client = redis.Redis.from_url(redis_client)
        self.auth = auth
        self.srv_key = srv_key
        self.bound_user_key = f"{srv_key}.boundUserKey"
        self.redis = redis_client
        self.server_addr = ""
        self.clients: dict[str, Any] = {}
        self.client_factory = client_factory or self._create_client

    def _create_client(self, srv_addr: str) -> Any:
        from imchat.client import Client

        return Client(srv_addr, DialOptions(header=self.auth))

    async def register(self, server_addr: str) -> None:
        self.server_addr = server_addr
        self.redis.set(self.srv_key, server_addr)

    async def bound_user(self, uid: str) -> None:
        if self.redis.hexists(self.bound_user_key, uid):
            return
        self.redis.hset(self.bound_user_key, uid, self.server_addr)

    async def relieve_user(self, uid: str) -> None:
        self.redis.hdel(self.bound_user_key, uid)

    async def transpond(self, msg: Any, *args: str) -> None:
        """Forward ``msg``; raise LookupError for a user bound to no server."""
        for uid in args:
            raw = self.redis.hget(self.bound_user_key, uid)
            if raw is None:
                raise LookupError(f"user {uid!r} is not bound to any server")
            srv_addr = _text(raw)
            client = self.clients.get(srv_addr)
            if client is None:
                client = self.client_factory(srv_addr)
                self.clients[srv_addr] = client
            logger.info("redis transpond -> %s uid %s", srv_addr, uid)
            await client.send(
                Message(frame_type=FrameType.TRANSPOND, transpond_uid=uid, data=msg)
            )