"""Tests for channel number allocation and frame routing."""

from unittest.mock import Mock

import pytest
from pika import frame as pika_frame
from pika import spec

from amqp_connection.channel import ChannelMultiplexer
from amqp_connection.exceptions import (
    ChannelAllocationError,
    ChannelLimitExceededError,
    UnknownChannelError,
)
from amqp_connection.shutdown import ShutdownReason


def fake_channel(number):
    channel = Mock()
    channel.channel_number = number
    channel.is_closed = False
    channel.is_open = True
    return channel


def test_zero_channel_max_means_protocol_limit():
    assert ChannelMultiplexer(0).channel_max == 65535


def test_allocates_lowest_free_number():
    multiplexer = ChannelMultiplexer(10)
    channels = [multiplexer.allocate(fake_channel) for _ in range(3)]

    assert multiplexer.release(channels[1])
    reused = multiplexer.allocate(fake_channel)

    assert [c.channel_number for c in channels] == [1, 2, 3]
    assert reused.channel_number == 2
    assert multiplexer.allocate(fake_channel).channel_number == 4
    assert len(multiplexer) == 4


def test_release_ignores_stale_channel():
    multiplexer = ChannelMultiplexer(10)
    old = multiplexer.allocate(fake_channel)
    multiplexer.release(old)
    current = multiplexer.allocate(fake_channel)

    assert multiplexer.release(old) is False
    assert multiplexer.get(1) is current


def test_limit_exceeded():
    multiplexer = ChannelMultiplexer(2)
    multiplexer.allocate(fake_channel)
    multiplexer.allocate(fake_channel)

    with pytest.raises(ChannelLimitExceededError) as info:
        multiplexer.allocate(fake_channel)
    assert info.value.channel_max == 2


@pytest.mark.parametrize("number", [0, 3, 70000])
def test_out_of_range_request(number):
    with pytest.raises(ChannelAllocationError):
        ChannelMultiplexer(2).allocate(fake_channel, number)


def test_requested_number_in_use():
    multiplexer = ChannelMultiplexer(5)
    multiplexer.allocate(fake_channel, 3)

    with pytest.raises(ChannelAllocationError):
        multiplexer.allocate(fake_channel, 3)
    assert multiplexer.allocate(fake_channel).channel_number == 1


def test_route_hands_frame_to_channel():
    multiplexer = ChannelMultiplexer(5)
    channel = multiplexer.allocate(fake_channel)
    frame = pika_frame.Method(1, spec.Basic.Ack(delivery_tag=1))

    multiplexer.route(frame)

    channel.handle_frame.assert_called_once_with(frame)


def test_route_to_unknown_channel_is_channel_error():
    multiplexer = ChannelMultiplexer(5)

    with pytest.raises(UnknownChannelError) as info:
        multiplexer.route(pika_frame.Method(4, spec.Basic.Ack(delivery_tag=1)))

    assert info.value.reply_code == spec.CHANNEL_ERROR
    assert info.value.channel_number == 4


def test_close_all_collects_failures():
    multiplexer = ChannelMultiplexer(5)
    healthy = multiplexer.allocate(fake_channel)
    broken = multiplexer.allocate(fake_channel)
    broken.force_close.side_effect = RuntimeError("stuck")
    reason = ShutdownReason.application(200, "Goodbye")

    failures = multiplexer.close_all(reason)

    healthy.force_close.assert_called_once_with(reason)
    assert [(c, type(e)) for c, e in failures] == [(broken, RuntimeError)]
    assert len(multiplexer) == 0
