import math
import time

import pytest

from imchat.options import (
    AckType,
    Authentication,
    DefaultAuthentication,
    DialOptions,
    HandshakeRequest,
    ServerOptions,
)


@pytest.mark.parametrize(
    "wire, member, name",
    [
        (0, AckType.NO_ACK, "NoAck"),
        (1, AckType.ONLY_ACK, "OnlyAck"),
        (2, AckType.RIGOR_ACK, "RigorAck"),
    ],
)
def test_ack_type_from_wire_value_and_name(wire, member, name):
    ack = ServerOptions(ack=wire).ack
    assert ack is member
    assert str(ack) == name


def test_query_values_collects_repeats_and_blanks():
    request = HandshakeRequest(path="/ws?userId=a&userId=b&empty=")
    assert request.query_values("userId") == ["a", "b"]
    assert request.query_values("empty") == [""]
    assert request.query_values("missing") == []


def test_default_authentication_allows_everyone():
    assert DefaultAuthentication().auth(HandshakeRequest()) is True


def test_default_user_id_formats_query_list():
    auth = DefaultAuthentication()
    assert auth.user_id(HandshakeRequest(path="/ws?userId=42")) == "[42]"
    assert auth.user_id(HandshakeRequest(path="/ws?userId=a&userId=b")) == "[a b]"


def test_default_user_id_falls_back_to_milliseconds():
    before = time.time_ns() // 1_000_000
    uid = DefaultAuthentication().user_id(HandshakeRequest(path="/ws"))
    after = time.time_ns() // 1_000_000
    assert uid.isdigit()
    assert before <= int(uid) <= after


def test_authentication_is_abstract():
    with pytest.raises(TypeError):
        Authentication()


def test_server_option_defaults():
    opts = ServerOptions()
    assert opts.pattern == "/ws"
    assert opts.ack is AckType.NO_ACK
    assert opts.ack_timeout == 30.0
    assert opts.concurrency == 10
    assert math.isinf(opts.max_connection_idle)
    assert opts.discover is None
    assert isinstance(opts.authentication, DefaultAuthentication)


def test_server_options_ignore_non_positive_idle():
    assert math.isinf(ServerOptions(max_connection_idle=0).max_connection_idle)
    assert math.isinf(ServerOptions(max_connection_idle=-5).max_connection_idle)
    assert ServerOptions(max_connection_idle=600).max_connection_idle == 600


def test_server_options_keep_cors_origins():
    assert ServerOptions(cors_origins=["*"]).cors_origins == ("*",)


def test_server_options_coerce_ack():
    assert ServerOptions(ack=2).ack is AckType.RIGOR_ACK


def test_dial_option_defaults():
    opts = DialOptions()
    assert opts.pattern == "/ws"
    assert opts.header is None
    assert opts.discover is None