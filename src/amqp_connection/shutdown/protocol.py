"""Bookkeeping for the two-phase close handshake of a connection."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .reason import ShutdownReason, ShutdownReportEntry

FORCED_CLOSE_DESCRIPTION = "Forced transport closure after close timeout"


class ShutdownProtocol:
    """Tracks a single shutdown run: who started it, what went wrong, when it ended.

    Only the first call to :meth:`begin` wins; later triggers (an application
    close racing a heartbeat timeout, say) observe the run already in
    progress and back off. The owning connection drives the actual
    handshake and calls :meth:`complete` once the transport is released.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._finished = threading.Event()
        self._reason: Optional[ShutdownReason] = None
        self._report: List[ShutdownReportEntry] = []
        self._force_timer: Optional[threading.Timer] = None

    @property
    def reason(self) -> Optional[ShutdownReason]:
        return self._reason

    @property
    def started(self) -> bool:
        return self._reason is not None

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    @property
    def report(self) -> List[ShutdownReportEntry]:
        with self._lock:
            return list(self._report)

    def begin(self, reason: ShutdownReason) -> bool:
        """Claim the shutdown run for ``reason``; False if one is already active."""
        with self._lock:
            if self._reason is not None:
                self.logger.debug("Shutdown already in progress, ignoring %s", reason)
                return False
            self._reason = reason
        self.logger.info("Shutting down: %s", reason)
        return True

    def record(self, description: str, exception: Optional[BaseException] = None) -> None:
        entry = ShutdownReportEntry(description, exception)
        with self._lock:
            self._report.append(entry)
        self.logger.warning("Shutdown report: %s", entry)

    def schedule_force(self, timeout: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` after ``timeout`` unless the run completes first."""
        timer = threading.Timer(timeout, callback)
        timer.daemon = True
        with self._lock:
            if self._finished.is_set() or self._force_timer is not None:
                return
            self._force_timer = timer
        timer.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def complete(self) -> bool:
        """Mark the run finished; True only for the first caller."""
        with self._lock:
            if self._finished.is_set():
                return False
            self._finished.set()
            timer, self._force_timer = self._force_timer, None
        if timer is not None:
            timer.cancel()
        return True
