"""Storage of shared conversations and of each user's conversation list."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

import pymongo
from bson import ObjectId

from imchat.models import (
    ChatLog,
    Conversation,
    Conversations,
    NotFoundError,
    parse_object_id,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationModel:
    """Reads and writes conversations in ``collection``, keyed by conversation id."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def insert(self, data: Conversation) -> None:
        """Store ``data``.

        A conversation that already carries an id is given a fresh one and
        stamped with creation and update times. ``data.id`` ends up as the
        id the database stored.
        """
        if data.id is not None:
            now = _now()
            data.id = ObjectId()
            data.create_at = now
            data.update_at = now
        result = self.collection.insert_one(data.to_document())
        data.id = result.inserted_id

    def find_one(self, id: str) -> Conversation:
        """Return the conversation whose conversation id is ``id``; raise NotFoundError if absent."""
        doc = self.collection.find_one({"conversationId": id})
        if doc is None:
            raise NotFoundError()
        return Conversation.from_document(doc)

    def update(self, data: Conversation) -> None:
        """Replace the stored conversation with ``data``, stamping its update time."""
        data.update_at = _now()
        self.collection.replace_one({"_id": data.id}, data.to_document())

    def delete(self, id: str) -> None:
        """Delete the conversation with hex id ``id``; raise InvalidObjectIdError if malformed."""
        oid = parse_object_id(id)
        self.collection.delete_one({"_id": oid})

    def list_by_conversation_ids(self, ids: Iterable[str]) -> list[Conversation]:
        """Return the conversations whose conversation ids are among ``ids``."""
        docs = self.collection.find({"conversationId": {"$in": list(ids)}})
        return [Conversation.from_document(doc) for doc in docs]

    def update_msg(self, chat_log: ChatLog) -> None:
        """Record ``chat_log`` as the latest message and count it in the total."""
        self.collection.update_one(
            {"conversationId": chat_log.conversation_id},
            {"$inc": {"total": 1}, "$set": {"msg": chat_log.to_document()}},
        )


class ConversationsModel:
    """Reads and writes each user's list of conversations in ``collection``."""

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def insert(self, data: Conversations) -> None:
        """Store ``data``, with the same id handling as ConversationModel.insert."""
        if data.id is not None:
            now = _now()
            data.id = ObjectId()
            data.create_at = now
            data.update_at = now
        result = self.collection.insert_one(data.to_document())
        data.id = result.inserted_id

    def find_one(self, id: str) -> Conversations:
        """Return the list with hex id ``id``.

        Raises InvalidObjectIdError for a malformed id and NotFoundError if absent.
        """
        oid = parse_object_id(id)
        doc = self.collection.find_one({"_id": oid})
        if doc is None:
            raise NotFoundError()
        return Conversations.from_document(doc)

    def update(self, data: Conversations) -> None:
        """Write ``data`` over the stored list, creating it if it does not exist."""
        data.update_at = _now()
        fields = data.to_document()
        fields.pop("_id", None)
        self.collection.update_one({"_id": data.id}, {"$set": fields}, upsert=True)

    def delete(self, id: str) -> None:
        """Delete the list with hex id ``id``; raise InvalidObjectIdError if malformed."""
        oid = parse_object_id(id)
        self.collection.delete_one({"_id": oid})

    def find_by_user_id(self, uid: str) -> Conversations:
        """Return the conversation list of user ``uid``; raise NotFoundError if absent."""
        doc = self.collection.find_one({"userId": uid})
        if doc is None:
            raise NotFoundError()
        return Conversations.from_document(doc)


def new_conversation_model(url: str, db: str, collection: str) -> ConversationModel:
    """Return a conversation model over ``collection`` of database ``db`` at ``url``."""
    client: pymongo.MongoClient = pymongo.MongoClient(url)
    return ConversationModel(client[db][collection])


def must_conversation_model(url: str, db: str) -> ConversationModel:
    """Return a conversation model over the ``conversation`` collection."""
    return new_conversation_model(url, db, "conversation")


def new_conversations_model(url: str, db: str, collection: str) -> ConversationsModel:
    """Return a conversation-list model over ``collection`` of database ``db`` at ``url``."""
    client: pymongo.MongoClient = pymongo.MongoClient(url)
    return ConversationsModel(client[db][collection])


def must_conversations_model(url: str, db: str) -> ConversationsModel:
    """Return a conversation-list model over the ``conversations`` collection."""
    return new_conversations_model(url, db, "conversations")