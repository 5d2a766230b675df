"""Tests for the per-connection recovery record."""

from amqp_connection.recovery import ChannelQos, RecoveryRecord


def test_tracks_open_channels_in_number_order():
    record = RecoveryRecord()
    record.channel_opened(3)
    record.channel_opened(1)
    record.channel_opened(3)

    assert record.channel_numbers() == [1, 3]
    assert len(record) == 2


def test_closed_channel_is_forgotten_with_its_qos():
    record = RecoveryRecord()
    record.channel_opened(1)
    record.record_qos(1, 10)

    record.channel_closed(1)
    record.channel_opened(1)

    assert record.qos_for(1) is None


def test_qos_only_recorded_for_known_channels():
    record = RecoveryRecord()
    record.channel_opened(2)

    record.record_qos(2, 50, global_qos=True)
    record.record_qos(9, 5)

    assert record.qos_for(2) == ChannelQos(prefetch_count=50, global_qos=True)
    assert record.qos_for(9) is None
    assert record.channel_numbers() == [2]
