"""Runs consumer callbacks away from the reader thread."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

Work = Callable[[], None]


class DeliveryWorker:
    """One thread per connection that executes consumer callbacks in arrival order.

    The reader thread only queues work here, so a callback may block on a
    synchronous call (or close the connection) while the reader keeps
    routing the replies it is waiting for.
    """

    def __init__(self, name: str = "amqp-delivery", logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._name = name
        self._queue: "queue.Queue[Optional[Work]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    @property
    def is_current(self) -> bool:
        return self._thread is not None and self._thread is threading.current_thread()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def submit(self, work: Work) -> None:
        if self._stopped.is_set():
            self.logger.debug("Delivery worker stopped, dropping work")
            return
        self._queue.put(work)

    def stop(self) -> None:
        """Stop accepting work; anything still queued is dropped."""
        self._stopped.set()
        self._queue.put(None)

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        while True:
            work = self._queue.get()
            if work is None or self._stopped.is_set():
                return
            try:
                work()
            except Exception:
                self.logger.error("Delivery work raised", exc_info=True)
