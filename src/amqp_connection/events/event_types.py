"""Event kinds and their payloads."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

if TYPE_CHECKING:
    from amqp_connection.channel import Channel
    from amqp_connection.connection import Connection


class EventKind(enum.Enum):
    SHUTDOWN = "shutdown"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"
    RECOVERY_SUCCEEDED = "recovery_succeeded"
    RECOVERY_FAILED = "recovery_failed"
    CONSUMER_TAG_CHANGED = "consumer_tag_changed"
    QUEUE_NAME_CHANGED = "queue_name_changed"
    CALLBACK_EXCEPTION = "callback_exception"


Listener = Callable[[Any], None]


@dataclass(frozen=True)
class ConnectionBlockedEvent:
    reason: str


@dataclass(frozen=True)
class CallbackExceptionEvent:
    """Application code raised: a listener handling ``kind``, or a consumer when ``kind`` is None."""

    exception: BaseException
    kind: Optional[EventKind] = None
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConsumerTagChangedEvent:
    old_tag: str
    new_tag: str


@dataclass(frozen=True)
class QueueNameChangedEvent:
    old_name: str
    new_name: str


@dataclass(frozen=True)
class RecoverySucceededEvent:
    """The replacement connection plus its re-opened channels keyed by the old channel number."""

    connection: Connection
    channels: Mapping[int, Channel]


@dataclass(frozen=True)
class RecoveryFailedEvent:
    exception: BaseException
