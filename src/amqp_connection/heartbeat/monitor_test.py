"""Tests for heartbeat emission and missed-heartbeat detection."""

from unittest.mock import Mock

import pytest

from amqp_connection.heartbeat import DEFAULT_MISSED_HEARTBEATS, HeartbeatMonitor


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


def make_monitor(clock, interval=10, **kwargs):
    return HeartbeatMonitor(interval, Mock(), Mock(), clock=clock, **kwargs)


def test_default_multiplier_is_two(clock):
    monitor = make_monitor(clock)

    assert DEFAULT_MISSED_HEARTBEATS == 2
    assert monitor.timeout == 20


def test_sends_heartbeat_after_outbound_silence(clock):
    monitor = make_monitor(clock)

    clock.now += 5
    monitor.frame_received()
    assert monitor.check()
    monitor._send_heartbeat.assert_not_called()

    clock.now += 5
    monitor.frame_received()
    assert monitor.check()
    monitor._send_heartbeat.assert_called_once_with()


def test_outbound_frames_postpone_heartbeat(clock):
    monitor = make_monitor(clock)

    clock.now += 9
    monitor.frame_sent()
    monitor.frame_received()
    clock.now += 9
    monitor.check()

    monitor._send_heartbeat.assert_not_called()


def test_inbound_silence_is_reported(clock):
    monitor = make_monitor(clock)

    clock.now += 19
    assert monitor.check()
    monitor._on_missed.assert_not_called()

    clock.now += 1
    assert monitor.check() is False
    monitor._on_missed.assert_called_once_with(20.0)


def test_configurable_multiplier(clock):
    monitor = make_monitor(clock, missed_heartbeats=3)

    clock.now += 25
    assert monitor.check()
    clock.now += 5
    assert monitor.check() is False


def test_zero_interval_disables_monitor(clock):
    monitor = make_monitor(clock, interval=0)

    monitor.start()
    clock.now += 1000

    assert not monitor.enabled
    assert monitor.check()
    monitor._on_missed.assert_not_called()
    assert monitor._thread is None


@pytest.mark.parametrize("kwargs", [{"interval": -1}, {"missed_heartbeats": 0}])
def test_invalid_settings(clock, kwargs):
    with pytest.raises(ValueError):
        make_monitor(clock, **kwargs)
