"""Lifecycle event fan-out with per-listener fault isolation."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from .event_types import CallbackExceptionEvent, EventKind, Listener


class EventDispatcher:
    """Delivers events to listeners in registration order.

    A listener that raises never reaches the component that triggered the
    event. Its exception becomes a ``CALLBACK_EXCEPTION`` event instead; a
    failure inside a callback-exception listener is logged and dropped.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._listeners: Dict[EventKind, Dict[Listener, None]] = {kind: {} for kind in EventKind}
        self._latched: Dict[EventKind, Any] = {}

    def add_listener(self, kind: EventKind, listener: Listener) -> None:
        """Register ``listener``; it fires at once if ``kind`` is already latched."""
        with self._lock:
            self._listeners[kind][listener] = None
            latched = kind in self._latched
            payload = self._latched.get(kind)
        if latched:
            self._invoke(kind, listener, payload)

    def remove_listener(self, kind: EventKind, listener: Listener) -> None:
        with self._lock:
            self._listeners[kind].pop(listener, None)

    def listeners(self, kind: EventKind) -> List[Listener]:
        with self._lock:
            return list(self._listeners[kind])

    def dispatch(self, kind: EventKind, payload: Any = None, *, latch: bool = False) -> None:
        with self._lock:
            if latch:
                self._latched[kind] = payload
            listeners = list(self._listeners[kind])
        self.logger.debug("Dispatching %s to %d listener(s)", kind.value, len(listeners))
        for listener in listeners:
            self._invoke(kind, listener, payload)

    def _invoke(self, kind: EventKind, listener: Listener, payload: Any) -> None:
        try:
            listener(payload)
        except Exception as exc:
            if kind is EventKind.CALLBACK_EXCEPTION:
                self.logger.error(
                    "Callback exception listener %r raised; ignoring", listener, exc_info=True
                )
                return
            self.logger.error("Listener %r for %s raised", listener, kind.value, exc_info=True)
            event = CallbackExceptionEvent(
                exception=exc,
                kind=kind,
                detail={"listener": listener, "payload": payload},
            )
            self.dispatch(EventKind.CALLBACK_EXCEPTION, event)
