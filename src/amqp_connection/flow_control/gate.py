"""Broker-driven publish backpressure."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, Hashable, Optional, Tuple

from amqp_connection.events import ConnectionBlockedEvent, EventDispatcher, EventKind

Write = Callable[[], None]


class FlowControlGate:
    """Holds back content writes while the broker has the connection blocked.

    Writes submitted while blocked are queued and flushed, in submission
    order, by whoever calls :meth:`unblock`. Each queued write carries a key
    (the owning channel); other writes for a key with held writes queue
    behind them so nothing on that channel overtakes a held publish.
    Nothing is dropped except by :meth:`discard` at teardown.
    """

    def __init__(self, dispatcher: EventDispatcher, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._dispatcher = dispatcher
        self._lock = threading.Lock()
        self._pending: Deque[Tuple[Optional[Hashable], Write]] = deque()
        self._in_flight: Optional[Hashable] = None
        self._blocked = False
        self._flushing = False
        self._reason = ""

    @property
    def blocked(self) -> bool:
        return self._blocked

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def holds(self, key: Hashable) -> bool:
        with self._lock:
            return self._holds(key)

    def submit(self, write: Write, key: Optional[Hashable] = None) -> bool:
        """Run ``write`` now if the gate is open, else queue it. Returns True if it ran."""
        with self._lock:
            if self._blocked or self._flushing or self._pending:
                self._pending.append((key, write))
                self.logger.debug("Connection blocked, deferring write (%d queued)", len(self._pending))
                return False
        write()
        return True

    def defer_if_held(self, key: Hashable, write: Write) -> bool:
        """Queue ``write`` behind held writes for ``key``.

        Returns False, without running ``write``, when nothing for ``key``
        is held; the caller then writes directly. Being blocked alone never
        holds back such writes.
        """
        with self._lock:
            if not self._holds(key):
                return False
            self._pending.append((key, write))
        self.logger.debug("Write for %s queued behind held publishes", key)
        return True

    def block(self, reason: str) -> None:
        with self._lock:
            if self._blocked:
                self.logger.warning("Received Connection.Blocked while already blocked")
                return
            self._blocked = True
            self._reason = reason
        self.logger.warning("Connection blocked by broker: %s", reason)
        self._dispatcher.dispatch(EventKind.BLOCKED, ConnectionBlockedEvent(reason))

    def unblock(self) -> int:
        """Open the gate and flush queued writes; returns how many were written."""
        with self._lock:
            if not self._blocked:
                self.logger.warning("Received Connection.Unblocked while not blocked")
                return 0
            self._blocked = False
            self._reason = ""
            self._flushing = True
        self.logger.info("Connection unblocked by broker")
        self._dispatcher.dispatch(EventKind.UNBLOCKED)
        return self._flush()

    def discard(self) -> int:
        with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
            self._blocked = False
        if dropped:
            self.logger.warning("Discarded %d write(s) held back by flow control", dropped)
        return dropped

    def _holds(self, key: Hashable) -> bool:
        return self._in_flight == key or any(k == key for k, _ in self._pending)

    def _flush(self) -> int:
        flushed = 0
        try:
            while True:
                with self._lock:
                    if self._blocked or not self._pending:
                        return flushed
                    self._in_flight, write = self._pending.popleft()
                write()
                flushed += 1
        finally:
            with self._lock:
                self._flushing = False
                self._in_flight = None
