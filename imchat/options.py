"""Server and client options, and handshake authentication."""

from __future__ import annotations

import abc
import enum
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import parse_qs, urlsplit

from imchat.message import (
    DEFAULT_ACK_TIMEOUT,
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_CONNECTION_IDLE,
)

if TYPE_CHECKING:
    from imchat.discover import Discover


class AckType(enum.IntEnum):
    """How strictly the server acknowledges client frames."""

    NO_ACK = 0
    ONLY_ACK = 1
    RIGOR_ACK = 2

    def __str__(self) -> str:
        if self is AckType.ONLY_ACK:
            return "OnlyAck"
        if self is AckType.RIGOR_ACK:
            return "RigorAck"
        return "NoAck"


@dataclass
class HandshakeRequest:
    """The HTTP request that opened a websocket.

    ``context`` carries values established during authentication.
    """

    path: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)

    def query_values(self, name: str) -> list[str]:
        """Return every value of query parameter ``name``, in order."""
        query = parse_qs(urlsplit(self.path).query, keep_blank_values=True)
        return query.get(name, [])


class Authentication(abc.ABC):
    """Decides whether a handshake may proceed and who made it."""

    @abc.abstractmethod
    def auth(self, request: HandshakeRequest) -> bool:
        """Return True if the request may open a connection."""

    @abc.abstractmethod
    def user_id(self, request: HandshakeRequest) -> str:
        """Return the user identity behind the request."""


class DefaultAuthentication(Authentication):
    """Lets everyone in; identity comes from the ``userId`` query parameter."""

    def auth(self, request: HandshakeRequest) -> bool:
        return True

    def user_id(self, request: HandshakeRequest) -> str:
        values = request.query_values("userId")
        if values:
            return "[" + " ".join(values) + "]"
        return str(time.time_ns() // 1_000_000)


@dataclass
class ServerOptions:
    """Settings of a websocket server.

    A non-positive ``max_connection_idle`` is ignored and the default kept.
    """

    authentication: Authentication = field(default_factory=DefaultAuthentication)
    ack: AckType = AckType.NO_ACK
    ack_timeout: float = DEFAULT_ACK_TIMEOUT
    pattern: str = "/ws"
    discover: Discover | None = None
    max_connection_idle: float = DEFAULT_MAX_CONNECTION_IDLE
    concurrency: int = DEFAULT_CONCURRENCY
    cors_origins: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.max_connection_idle <= 0:
            self.max_connection_idle = DEFAULT_MAX_CONNECTION_IDLE
        self.ack = AckType(self.ack)
        self.cors_origins = tuple(self.cors_origins)


@dataclass
class DialOptions:
    """Settings of a websocket client."""

    pattern: str = "/ws"
    header: Mapping[str, str] | None = None
    discover: Discover | None = None