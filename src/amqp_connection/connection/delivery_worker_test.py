"""Tests for the consumer callback worker."""

import threading

from amqp_connection.connection.delivery_worker import DeliveryWorker


def test_runs_work_in_order_on_its_own_thread():
    worker = DeliveryWorker(name="test-delivery")
    seen = []
    done = threading.Event()
    worker.start()

    for n in range(3):
        worker.submit(lambda n=n: seen.append((n, worker.is_current)))
    worker.submit(done.set)

    assert done.wait(2.0)
    assert seen == [(0, True), (1, True), (2, True)]
    assert not worker.is_current
    worker.stop()
    worker.join(2.0)


def test_failing_work_does_not_stop_the_worker():
    worker = DeliveryWorker()
    done = threading.Event()
    worker.start()

    worker.submit(lambda: 1 / 0)
    worker.submit(done.set)

    assert done.wait(2.0)
    worker.stop()
    worker.join(2.0)


def test_work_after_stop_is_dropped():
    worker = DeliveryWorker()
    ran = []
    worker.start()
    worker.stop()
    worker.join(2.0)

    worker.submit(lambda: ran.append(True))

    assert ran == []
