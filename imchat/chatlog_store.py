"""Storage of chat logs in a MongoDB collection."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

import pymongo
from bson import ObjectId

from imchat.models import ChatLog, InvalidObjectIdError, NotFoundError, parse_object_id

DEFAULT_CHAT_LOG_LIMIT = 100
"""Number of chat logs listed when no positive limit is given."""

_ZERO_OBJECT_ID = ObjectId(b"\x00" * 12)


class ChatLogModel:
    """Reads and writes chat logs in ``collection``."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def insert(self, data: ChatLog) -> None:
        """Store ``data``; its ``id`` is set to the id the database assigned."""
        result = self.collection.insert_one(data.to_document())
        data.id = result.inserted_id

    def find_one(self, id: str) -> ChatLog:
        """Return the chat log with hex id ``id``.

        Raises InvalidObjectIdError for a malformed id and NotFoundError if absent.
        """
        oid = parse_object_id(id)
        doc = self.collection.find_one({"_id": oid})
        if doc is None:
            raise NotFoundError()
        return ChatLog.from_document(doc)

    def list_by_send_time(
        self,
        conversation_id: str,
        start_send_time: int,
        end_send_time: int,
        limit: int,
    ) -> list[ChatLog]:
        """List a conversation's chat logs, newest first.

        With a positive ``end_send_time`` the logs sent after it and up to
        ``start_send_time`` are listed; otherwise those sent before
        ``start_send_time``.
        """
        if end_send_time > 0:
            send_time = {"$gt": end_send_time, "$lte": start_send_time}
        else:
            send_time = {"$lt": start_send_time}
        query = {"conversationId": conversation_id, "sendTime": send_time}
        docs = self.collection.find(
            query,
            sort=[("sendTime", pymongo.DESCENDING)],
            limit=limit if limit > 0 else DEFAULT_CHAT_LOG_LIMIT,
        )
        return [ChatLog.from_document(doc) for doc in docs]

    def list_by_msg_ids(self, msg_ids: Iterable[str]) -> list[ChatLog]:
        """Return the chat logs with the given hex ids; malformed ids match nothing."""
        ids = []
        for msg_id in msg_ids:
            try:
                ids.append(parse_object_id(msg_id))
            except InvalidObjectIdError:
                ids.append(_ZERO_OBJECT_ID)
        docs = self.collection.find({"_id": {"$in": ids}})
        return [ChatLog.from_document(doc) for doc in docs]

    def update(self, data: ChatLog) -> None:
        """Replace the stored chat log with ``data``, stamping its update time."""
        data.update_at = datetime.now(timezone.utc)
        self.collection.replace_one({"_id": data.id}, data.to_document())

    def update_make_read(self, id: ObjectId | str, read_records: bytes) -> None:
        """Overwrite the read records of the chat log ``id``."""
        oid = parse_object_id(id)
        self.collection.update_one(
            {"_id": oid}, {"$set": {"readRecords": bytes(read_records)}}
        )

    def delete(self, id: str) -> None:
        """Delete the chat log with hex id ``id``; raise InvalidObjectIdError if malformed."""
        oid = parse_object_id(id)
        self.collection.delete_one({"_id": oid})


def new_chat_log_model(url: str, db: str, collection: str) -> ChatLogModel:
    """Return a model over ``collection`` of database ``db`` at ``url``."""
    client: pymongo.MongoClient = pymongo.MongoClient(url)
    return ChatLogModel(client[db][collection])


def must_chat_log_model(url: str, db: str) -> ChatLogModel:
    """Return a model over the ``chat_log`` collection."""
    return new_chat_log_model(url, db, "chat_log")