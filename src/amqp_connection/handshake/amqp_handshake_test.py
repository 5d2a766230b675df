"""Tests for connection negotiation."""

from unittest.mock import Mock

import pytest
from pika import frame as pika_frame
from pika import spec
from pika.credentials import ExternalCredentials

from amqp_connection.config import ConnectionConfig
from amqp_connection.connection.frame_stream import FrameStream
from amqp_connection.exceptions import AuthenticationFailureError, HandshakeError
from amqp_connection.handshake.amqp_handshake import AmqpHandshake, negotiate_limit


def method(m):
    return pika_frame.Method(0, m)


def start(mechanisms="PLAIN AMQPLAIN"):
    return method(
        spec.Connection.Start(server_properties={"product": "RabbitMQ"}, mechanisms=mechanisms)
    )


@pytest.fixture
def stream():
    return Mock(spec=FrameStream)


def written(stream):
    return [call.args[0] for call in stream.write_frame.call_args_list]


@pytest.mark.parametrize(
    "client, server, expected",
    [(0, 0, 0), (0, 2047, 2047), (100, 0, 100), (100, 2047, 100), (None, 60, 60)],
)
def test_negotiate_limit(client, server, expected):
    assert negotiate_limit(client, server) == expected


def test_negotiate_runs_full_exchange(stream):
    stream.read_frame.side_effect = [
        start(),
        pika_frame.Heartbeat(),
        method(spec.Connection.Tune(channel_max=2047, frame_max=131072, heartbeat=60)),
        method(spec.Connection.OpenOk(known_hosts="a:5672,b:5672")),
    ]
    config = ConnectionConfig(virtual_host="/jobs", client_provided_name="worker")

    params = AmqpHandshake().negotiate(stream, config)

    assert params.channel_max == 2047
    assert params.frame_max == 131072
    assert params.heartbeat == 60
    assert params.mechanism == "PLAIN"
    assert params.server_properties == {"product": "RabbitMQ"}
    assert params.known_hosts == ["a:5672", "b:5672"]

    frames = written(stream)
    assert isinstance(frames[0], pika_frame.ProtocolHeader)
    start_ok, tune_ok, open_ = (f.method for f in frames[1:])
    assert isinstance(start_ok, spec.Connection.StartOk)
    assert start_ok.client_properties["connection_name"] == "worker"
    assert start_ok.mechanism == "PLAIN"
    assert (tune_ok.channel_max, tune_ok.frame_max, tune_ok.heartbeat) == (2047, 131072, 60)
    assert open_.virtual_host == "/jobs"


def test_requested_heartbeat_overrides_broker(stream):
    stream.read_frame.side_effect = [
        start(),
        method(spec.Connection.Tune(channel_max=0, frame_max=0, heartbeat=60)),
        method(spec.Connection.OpenOk()),
    ]

    params = AmqpHandshake().negotiate(stream, ConnectionConfig(requested_heartbeat=0))

    assert params.heartbeat == 0
    assert params.channel_max == ConnectionConfig().requested_channel_max


def test_no_shared_mechanism_is_an_authentication_failure(stream):
    stream.read_frame.side_effect = [start(mechanisms="EXTERNAL")]

    with pytest.raises(AuthenticationFailureError):
        AmqpHandshake().negotiate(stream, ConnectionConfig())


def test_external_credentials(stream):
    stream.read_frame.side_effect = [
        start(mechanisms="EXTERNAL"),
        method(spec.Connection.Tune(channel_max=0, frame_max=0, heartbeat=0)),
        method(spec.Connection.OpenOk()),
    ]

    params = AmqpHandshake().negotiate(stream, ConnectionConfig(credentials=ExternalCredentials()))

    assert params.mechanism == "EXTERNAL"


def test_access_refused_is_an_authentication_failure(stream):
    stream.read_frame.side_effect = [
        start(),
        method(spec.Connection.Close(403, "ACCESS_REFUSED", 0, 0)),
    ]

    with pytest.raises(AuthenticationFailureError) as info:
        AmqpHandshake().negotiate(stream, ConnectionConfig())

    assert info.value.reply_code == 403
    assert isinstance(written(stream)[-1].method, spec.Connection.CloseOk)


def test_other_broker_close_is_a_handshake_error(stream):
    stream.read_frame.side_effect = [
        start(),
        method(spec.Connection.Tune(channel_max=0, frame_max=0, heartbeat=0)),
        method(spec.Connection.Close(530, "NOT_ALLOWED", 0, 0)),
    ]

    with pytest.raises(HandshakeError) as info:
        AmqpHandshake().negotiate(stream, ConnectionConfig(virtual_host="missing"))

    assert not isinstance(info.value, AuthenticationFailureError)
    assert info.value.reply_code == 530


def test_protocol_header_reply_means_version_mismatch(stream):
    stream.read_frame.side_effect = [pika_frame.ProtocolHeader(2, 1, 3)]

    with pytest.raises(HandshakeError, match="offered 2-1-3"):
        AmqpHandshake().negotiate(stream, ConnectionConfig())


def test_unexpected_method(stream):
    stream.read_frame.side_effect = [start(), method(spec.Connection.OpenOk())]

    with pytest.raises(HandshakeError, match="Connection.Tune"):
        AmqpHandshake().negotiate(stream, ConnectionConfig())


def test_client_properties_merge_user_values():
    config = ConnectionConfig(client_properties={"product": "custom", "team": "data"})

    properties = AmqpHandshake().client_properties(config)

    assert properties["product"] == "custom"
    assert properties["team"] == "data"
    assert properties["capabilities"]["connection.blocked"] is True
