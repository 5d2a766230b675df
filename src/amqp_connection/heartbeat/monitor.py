"""Heartbeat emission and liveness checking."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

DEFAULT_MISSED_HEARTBEATS = 2


class HeartbeatMonitor:
    """Sends heartbeats on outbound silence and reports inbound silence.

    A heartbeat goes out once nothing has been written for ``interval``
    seconds. The peer is declared dead after ``interval * missed_heartbeats``
    seconds without any inbound frame. An interval of 0 disables both.
    """

    def __init__(
        self,
        interval: float,
        send_heartbeat: Callable[[], None],
        on_missed: Callable[[float], None],
        *,
        missed_heartbeats: int = DEFAULT_MISSED_HEARTBEATS,
        clock: Callable[[], float] = time.monotonic,
        name: str = "amqp-heartbeat",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if interval < 0:
            raise ValueError("Heartbeat interval must not be negative")
        if missed_heartbeats < 1:
            raise ValueError("missed_heartbeats must be at least 1")
        self.interval = interval
        self.missed_heartbeats = missed_heartbeats
        self.logger = logger or logging.getLogger(__name__)
        self._send_heartbeat = send_heartbeat
        self._on_missed = on_missed
        self._clock = clock
        self._name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        now = clock()
        self._last_sent = now
        self._last_received = now

    @property
    def enabled(self) -> bool:
        return self.interval > 0

    @property
    def timeout(self) -> float:
        return self.interval * self.missed_heartbeats

    def start(self) -> None:
        if not self.enabled or self._thread is not None:
            return
        now = self._clock()
        self._last_sent = now
        self._last_received = now
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self.logger.debug("Heartbeat monitor started (interval=%ss, timeout=%ss)", self.interval, self.timeout)

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval or None)

    def frame_sent(self) -> None:
        self._last_sent = self._clock()

    def frame_received(self) -> None:
        self._last_received = self._clock()

    def check(self) -> bool:
        """Evaluate both timers once; returns False when the peer is considered dead."""
        if not self.enabled:
            return True
        now = self._clock()
        silence = now - self._last_received
        if silence >= self.timeout:
            self.logger.warning("No frames received for %.1fs, peer considered dead", silence)
            self._stop.set()
            self._on_missed(silence)
            return False
        if now - self._last_sent >= self.interval:
            self.logger.debug("Sending heartbeat")
            self._send_heartbeat()
            self._last_sent = now
        return True

    def _run(self) -> None:
        while not self._stop.wait(self.interval / 2):
            try:
                if not self.check():
                    return
            except Exception:
                self.logger.error("Heartbeat check failed", exc_info=True)
                return
