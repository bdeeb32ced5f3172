import copy
from types import SimpleNamespace

import pytest
from bson import ObjectId

from imchat.conversation_store import ConversationModel, ConversationsModel
from imchat.models import (
    ChatLog,
    Conversation,
    Conversations,
    InvalidObjectIdError,
    NotFoundError,
)


class FakeCollection:
    def __init__(self):
        self.docs = []

    @staticmethod
    def _matches(doc, query):
        for key, expected in query.items():
            if isinstance(expected, dict) and "$in" in expected:
                if doc.get(key) not in expected["$in"]:
                    return False
            elif doc.get(key) != expected:
                return False
        return True

    def insert_one(self, doc):
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def find_one(self, query):
        return next((copy.deepcopy(d) for d in self.docs if self._matches(d, query)), None)

    def find(self, query):
        return [copy.deepcopy(d) for d in self.docs if self._matches(d, query)]

    def replace_one(self, query, doc):
        for index, existing in enumerate(self.docs):
            if self._matches(existing, query):
                new = copy.deepcopy(doc)
                new["_id"] = existing["_id"]
                self.docs[index] = new
                return

    def update_one(self, query, update, upsert=False):
        target = next((d for d in self.docs if self._matches(d, query)), None)
        if target is None:
            if not upsert:
                return
            target = copy.deepcopy(query)
            self.docs.append(target)
        for key, value in update.get("$set", {}).items():
            target[key] = copy.deepcopy(value)
        for key, value in update.get("$inc", {}).items():
            target[key] = target.get(key, 0) + value

    def delete_one(self, query):
        for index, existing in enumerate(self.docs):
            if self._matches(existing, query):
                del self.docs[index]
                return


@pytest.fixture
def conversation_model():
    return ConversationModel(FakeCollection())


@pytest.fixture
def conversations_model():
    return ConversationsModel(FakeCollection())


def test_insert_and_find_by_conversation_id(conversation_model):
    data = Conversation(conversation_id="a_b", chat_type=2)
    conversation_model.insert(data)
    found = conversation_model.find_one("a_b")
    assert found.id == data.id
    assert found.chat_type == 2
    assert found.conversation_id == "a_b"


def test_insert_with_existing_id_assigns_fresh_id(conversation_model):
    old = ObjectId()
    data = Conversation(id=old, conversation_id="c1")
    conversation_model.insert(data)
    assert data.id != old
    assert data.create_at is not None
    assert data.create_at == data.update_at
    assert conversation_model.find_one("c1").id == data.id


def test_find_one_missing_raises(conversation_model):
    with pytest.raises(NotFoundError):
        conversation_model.find_one("nope")


def test_update_replaces_and_stamps(conversation_model):
    data = Conversation(conversation_id="c2")
    conversation_model.insert(data)
    data.is_show = True
    data.seq = 7
    conversation_model.update(data)
    assert data.update_at is not None
    found = conversation_model.find_one("c2")
    assert found.is_show is True
    assert found.seq == 7


def test_delete(conversation_model):
    data = Conversation(conversation_id="c3")
    conversation_model.insert(data)
    conversation_model.delete(str(data.id))
    with pytest.raises(NotFoundError):
        conversation_model.find_one("c3")


def test_delete_invalid_id(conversation_model):
    with pytest.raises(InvalidObjectIdError):
        conversation_model.delete("xyz")


def test_list_by_conversation_ids(conversation_model):
    for cid in ("x", "y", "z"):
        conversation_model.insert(Conversation(conversation_id=cid))
    found = conversation_model.list_by_conversation_ids(["x", "z", "missing"])
    assert sorted(c.conversation_id for c in found) == ["x", "z"]


def test_update_msg_counts_and_sets_latest(conversation_model):
    conversation_model.insert(Conversation(conversation_id="g1"))
    conversation_model.update_msg(ChatLog(conversation_id="g1", msg_content="hi"))
    conversation_model.update_msg(ChatLog(conversation_id="g1", msg_content="there"))
    found = conversation_model.find_one("g1")
    assert found.total == 2
    assert found.msg.msg_content == "there"


def test_conversations_update_upserts_and_finds_by_user(conversations_model):
    data = Conversations(
        id=ObjectId(),
        user_id="u1",
        conversation_list={"a_b": Conversation(conversation_id="a_b", is_show=True)},
    )
    conversations_model.update(data)
    found = conversations_model.find_by_user_id("u1")
    assert found.id == data.id
    assert found.conversation_list["a_b"].is_show is True
    assert conversations_model.find_one(str(data.id)).user_id == "u1"


def test_conversations_update_overwrites(conversations_model):
    data = Conversations(id=ObjectId(), user_id="u2")
    conversations_model.update(data)
    data.conversation_list["k"] = Conversation(conversation_id="k", total=3)
    conversations_model.update(data)
    found = conversations_model.find_by_user_id("u2")
    assert list(found.conversation_list) == ["k"]
    assert found.conversation_list["k"].total == 3


def test_conversations_find_errors(conversations_model):
    with pytest.raises(InvalidObjectIdError):
        conversations_model.find_one("bad")
    with pytest.raises(NotFoundError):
        conversations_model.find_one(str(ObjectId()))
    with pytest.raises(NotFoundError):
        conversations_model.find_by_user_id("ghost")


def test_conversations_insert_and_delete(conversations_model):
    data = Conversations(user_id="u3")
    conversations_model.insert(data)
    assert conversations_model.find_by_user_id("u3").id == data.id
    conversations_model.delete(str(data.id))
    with pytest.raises(NotFoundError):
        conversations_model.find_by_user_id("u3")