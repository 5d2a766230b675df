"""Tests for the pika-backed frame codec."""

import pytest
from pika import frame as pika_frame
from pika import spec

from amqp_connection.codec import PikaFrameCodec
from amqp_connection.exceptions import FrameDecodeError


def test_partial_frame_needs_more_data():
    codec = PikaFrameCodec()
    data = codec.encode(pika_frame.Method(1, spec.Channel.Open()))

    assert codec.decode(data[:5]) == (0, None)


def test_decodes_one_frame_at_a_time():
    codec = PikaFrameCodec()
    first = codec.encode(pika_frame.Method(1, spec.Basic.Ack(delivery_tag=7)))
    second = codec.encode(pika_frame.Heartbeat())

    consumed, frame = codec.decode(first + second)

    assert consumed == len(first)
    assert frame.channel_number == 1
    assert frame.method.delivery_tag == 7


def test_protocol_header_is_recognised():
    codec = PikaFrameCodec()

    consumed, frame = codec.decode(codec.encode(pika_frame.ProtocolHeader()))

    assert consumed == 8
    assert isinstance(frame, pika_frame.ProtocolHeader)


def test_bad_frame_end_raises_decode_error():
    codec = PikaFrameCodec()
    data = bytearray(codec.encode(pika_frame.Method(1, spec.Channel.Open())))
    data[-1] = 0x00

    with pytest.raises(FrameDecodeError):
        codec.decode(bytes(data))
