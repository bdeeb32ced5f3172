"""Frames exchanged over the chat websocket, and routing entries."""

from __future__ import annotations

import enum
import json
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from imchat.connection import Conn

DEFAULT_MAX_CONNECTION_IDLE: float = math.inf
"""Seconds a connection may stay idle before it is closed; unlimited by default."""

DEFAULT_ACK_TIMEOUT: float = 30.0
"""Seconds to wait for a client to confirm an acknowledged frame."""

DEFAULT_CONCURRENCY: int = 10
"""Number of background tasks the server runs at once."""


class FrameType(enum.IntEnum):
    """Kind of a websocket frame."""

    DATA = 0x0
    PING = 0x1
    ACK = 0x2
    NO_ACK = 0x3
    ERR = 0x9
    TRANSPOND = 0x6


def _encode(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"object of type {type(value).__name__} is not JSON serializable")


def _field(data: dict, key: str, kind: type, default: Any) -> Any:
    value = data.get(key, default)
    if value is None:
        return default
    if kind is int and (isinstance(value, bool) or not isinstance(value, int)):
        raise ValueError(f"field {key!r} must be an integer, got {value!r}")
    if kind is str and not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


@dataclass
class Message:
    """One frame on the wire.

    ``ack_time`` and ``err_count`` are bookkeeping for the server and are
    never serialised.
    """

    frame_type: FrameType = FrameType.DATA
    id: str = ""
    transpond_uid: str = ""
    ack_seq: int = 0
    method: str = ""
    form_id: str = ""
    data: Any = None
    ack_time: float | None = field(default=None, compare=False, repr=False)
    err_count: int = field(default=0, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Return the frame as a JSON-ready mapping with its wire keys."""
        return {
            "frameType": int(self.frame_type),
            "id": self.id,
            "transpondUid": self.transpond_uid,
            "ackSeq": self.ack_seq,
            "method": self.method,
            "formId": self.form_id,
            "data": self.data,
        }

    def to_json(self) -> str:
        """Serialise the frame to compact JSON text."""
        return json.dumps(
            self.to_dict(), ensure_ascii=False, separators=(",", ":"), default=_encode
        )

    @classmethod
    def from_dict(cls, data: Any) -> Message:
        """Build a frame from a decoded JSON object; raise ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"message must be a JSON object, got {type(data).__name__}")
        raw_type = _field(data, "frameType", int, 0)
        try:
            frame_type = FrameType(raw_type)
        except ValueError:
            raise ValueError(f"unknown frame type {raw_type!r}") from None
        return cls(
            frame_type=frame_type,
            id=_field(data, "id", str, ""),
            transpond_uid=_field(data, "transpondUid", str, ""),
            ack_seq=_field(data, "ackSeq", int, 0),
            method=_field(data, "method", str, ""),
            form_id=_field(data, "formId", str, ""),
            data=data.get("data"),
        )

    @classmethod
    def from_json(cls, text: str | bytes) -> Message:
        """Parse JSON text into a frame; raise ValueError if it is not one."""
        return cls.from_dict(json.loads(text))


HandlerFunc = Callable[[Any, "Conn", Message], Any]
"""A route handler: called with the server, the connection and the frame."""


@dataclass(frozen=True)
class Route:
    """Binds a frame ``method`` to the handler that serves it."""

    method: str
    handler: HandlerFunc


def new_message(form_id: str, data: Any) -> Message:
    """Return a data frame sent on behalf of ``form_id``."""
    return Message(frame_type=FrameType.DATA, form_id=form_id, data=data)


def new_err_message(err: BaseException | str) -> Message:
    """Return an error frame carrying the text of ``err``."""
    return Message(frame_type=FrameType.ERR, data=str(err))