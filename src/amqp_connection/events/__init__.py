"""Connection lifecycle events."""

from .dispatcher import EventDispatcher
from .event_types import (
    CallbackExceptionEvent,
    ConnectionBlockedEvent,
    ConsumerTagChangedEvent,
    EventKind,
    Listener,
    QueueNameChangedEvent,
    RecoveryFailedEvent,
    RecoverySucceededEvent,
)

__all__ = [
    "CallbackExceptionEvent",
    "ConnectionBlockedEvent",
    "ConsumerTagChangedEvent",
    "EventDispatcher",
    "EventKind",
    "Listener",
    "QueueNameChangedEvent",
    "RecoveryFailedEvent",
    "RecoverySucceededEvent",
]
