"""Payloads carried in the ``data`` of chat frames."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


def _mapping(data: Any, what: str) -> Mapping[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"{what} must be a mapping, got {type(data).__name__}")
    return data


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number, got {value!r}")
    return int(value)


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


def _str_map(data: Mapping[str, Any], key: str) -> dict[str, str]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValueError(f"field {key!r} must map strings to strings, got {value!r}")
    return dict(value)


def _str_list(data: Mapping[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"field {key!r} must be a list of strings, got {value!r}")
    return list(value)


@dataclass
class Msg:
    """The message body of a chat."""

    msg_id: str = ""
    read_records: dict[str, str] = field(default_factory=dict)
    m_type: int = 0
    content: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Msg:
        """Decode from a mapping; raise ValueError on a field of the wrong type."""
        data = _mapping(data, "msg")
        return cls(
            msg_id=_str(data, "msgId"),
            read_records=_str_map(data, "readRecords"),
            m_type=_int(data, "mType"),
            content=_str(data, "content"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form."""
        return {
            "msgId": self.msg_id,
            "readRecords": dict(self.read_records),
            "mType": self.m_type,
            "content": self.content,
        }


@dataclass
class Chat:
    """A chat message sent by a client or delivered to one."""

    chat_type: int = 0
    msg: Msg = field(default_factory=Msg)
    conversation_id: str = ""
    send_id: str = ""
    recv_id: str = ""
    send_time: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> Chat:
        """Decode from a mapping; raise ValueError on a field of the wrong type."""
        data = _mapping(data, "chat")
        return cls(
            chat_type=_int(data, "chatType"),
            msg=Msg.from_dict(data.get("msg")),
            conversation_id=_str(data, "conversationId"),
            send_id=_str(data, "sendId"),
            recv_id=_str(data, "recvId"),
            send_time=_int(data, "sendTime"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form."""
        return {
            "chatType": self.chat_type,
            "msg": self.msg.to_dict(),
            "conversationId": self.conversation_id,
            "sendId": self.send_id,
            "recvId": self.recv_id,
            "sendTime": self.send_time,
        }


@dataclass
class Push:
    """A message to be delivered to one user or to the members of a group."""

    chat_type: int = 0
    m_type: int = 0
    conversation_id: str = ""
    send_id: str = ""
    recv_id: str = ""
    recv_ids: list[str] = field(default_factory=list)
    send_time: int = 0
    msg_id: str = ""
    read_records: dict[str, str] = field(default_factory=dict)
    content_type: int = 0
    content: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Push:
        """Decode from a mapping; raise ValueError on a field of the wrong type."""
        data = _mapping(data, "push")
        return cls(
            chat_type=_int(data, "chatType"),
            m_type=_int(data, "mType"),
            conversation_id=_str(data, "conversationId"),
            send_id=_str(data, "sendId"),
            recv_id=_str(data, "recvId"),
            recv_ids=_str_list(data, "recvIds"),
            send_time=_int(data, "sendTime"),
            msg_id=_str(data, "msgId"),
            read_records=_str_map(data, "readRecords"),
            content_type=_int(data, "contentType"),
            content=_str(data, "content"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form."""
        return {
            "chatType": self.chat_type,
            "mType": self.m_type,
            "conversationId": self.conversation_id,
            "sendId": self.send_id,
            "recvId": self.recv_id,
            "recvIds": list(self.recv_ids),
            "sendTime": self.send_time,
            "msgId": self.msg_id,
            "readRecords": dict(self.read_records),
            "contentType": self.content_type,
            "content": self.content,
        }


@dataclass
class MarkRead:
    """A client's report that it has read some messages of a conversation."""

    chat_type: int = 0
    recv_id: str = ""
    conversation_id: str = ""
    msg_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> MarkRead:
        """Decode from a mapping; raise ValueError on a field of the wrong type."""
        data = _mapping(data, "markRead")
        return cls(
            chat_type=_int(data, "chatType"),
            recv_id=_str(data, "recvId"),
            conversation_id=_str(data, "conversationId"),
            msg_ids=_str_list(data, "msgIds"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form."""
        return {
            "chatType": self.chat_type,
            "recvId": self.recv_id,
            "conversationId": self.conversation_id,
            "msgIds": list(self.msg_ids),
        }