"""Tests for the flow-control gate."""

from unittest.mock import Mock

import pytest

from amqp_connection.events import ConnectionBlockedEvent, EventDispatcher, EventKind
from amqp_connection.flow_control import FlowControlGate


@pytest.fixture
def dispatcher():
    return EventDispatcher()


@pytest.fixture
def gate(dispatcher):
    return FlowControlGate(dispatcher)


def test_submit_runs_immediately_when_open(gate):
    write = Mock()

    assert gate.submit(write) is True

    write.assert_called_once_with()
    assert gate.pending == 0


def test_blocked_writes_flush_in_order_on_unblock(gate):
    calls = []
    gate.block("memory alarm")

    assert gate.submit(lambda: calls.append(1)) is False
    assert gate.submit(lambda: calls.append(2)) is False
    assert calls == []
    assert gate.pending == 2

    assert gate.unblock() == 2
    assert calls == [1, 2]
    assert not gate.blocked


def test_block_and_unblock_fire_events(gate, dispatcher):
    events = []
    dispatcher.add_listener(EventKind.BLOCKED, events.append)
    dispatcher.add_listener(EventKind.UNBLOCKED, events.append)

    gate.block("disk alarm")
    gate.block("disk alarm")
    gate.unblock()
    gate.unblock()

    assert events == [ConnectionBlockedEvent("disk alarm"), None]
    assert gate.reason == ""


def test_write_submitted_during_flush_keeps_order(gate):
    calls = []

    def first():
        calls.append("first")
        gate.submit(lambda: calls.append("late"))

    gate.block("alarm")
    gate.submit(first)
    gate.submit(lambda: calls.append("second"))
    gate.unblock()

    assert calls == ["first", "second", "late"]


def test_reblock_during_flush_stops_flushing(gate):
    calls = []

    def first():
        calls.append("first")
        gate.block("again")

    gate.block("alarm")
    gate.submit(first)
    gate.submit(lambda: calls.append("second"))

    assert gate.unblock() == 1
    assert calls == ["first"]
    assert gate.blocked
    assert gate.pending == 1


def test_discard_drops_pending_writes(gate):
    write = Mock()
    gate.block("alarm")
    gate.submit(write)

    assert gate.discard() == 1

    write.assert_not_called()
    assert not gate.blocked
    assert gate.pending == 0


def test_failing_write_propagates_and_resets_flush(gate):
    gate.block("alarm")
    gate.submit(Mock(side_effect=OSError("broken pipe")))

    with pytest.raises(OSError):
        gate.unblock()

    later = Mock()
    assert gate.submit(later) is True
    later.assert_called_once_with()


def test_writes_for_a_held_key_queue_behind_it(gate):
    calls = []
    gate.block("alarm")
    gate.submit(lambda: calls.append("publish on 1"), key=1)

    assert gate.holds(1)
    assert gate.defer_if_held(1, lambda: calls.append("close 1")) is True
    assert gate.defer_if_held(2, lambda: calls.append("ack 2")) is False
    assert calls == []

    gate.unblock()

    assert calls == ["publish on 1", "close 1"]
    assert not gate.holds(1)


def test_defer_while_blocked_without_held_writes_goes_direct(gate):
    gate.block("alarm")

    assert gate.defer_if_held(1, Mock()) is False
    assert gate.pending == 0


def test_write_in_flight_still_holds_its_key(gate):
    observed = []

    def publish():
        observed.append(gate.holds(1))

    gate.block("alarm")
    gate.submit(publish, key=1)
    gate.unblock()

    assert observed == [True]
    assert not gate.holds(1)
