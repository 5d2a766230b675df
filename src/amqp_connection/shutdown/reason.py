"""Value types describing why a connection or channel shut down."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from pika import spec

# Reply code of closes caused by transport loss; never sent on the wire.
SOCKET_ERROR_CLOSE_CODE = -1


class ShutdownInitiator(enum.Enum):
    """Who started the shutdown."""

    APPLICATION = "application"
    PEER = "peer"
    LIBRARY = "library"


@dataclass(frozen=True)
class ShutdownReason:
    """Immutable record of a connection or channel closure."""

    reply_code: int
    reply_text: str
    initiator: ShutdownInitiator
    class_id: int = 0
    method_id: int = 0
    source: str = "connection"
    cause: Optional[BaseException] = field(default=None, compare=False)

    @classmethod
    def application(cls, reply_code: int, reply_text: str, source: str = "connection") -> ShutdownReason:
        return cls(reply_code, reply_text, ShutdownInitiator.APPLICATION, source=source)

    @classmethod
    def from_close_method(cls, method: spec.Connection.Close, source: str = "connection") -> ShutdownReason:
        """Build a peer-initiated reason from a ``Connection.Close`` or ``Channel.Close`` method."""
        return cls(
            method.reply_code,
            method.reply_text,
            ShutdownInitiator.PEER,
            class_id=method.class_id or 0,
            method_id=method.method_id or 0,
            source=source,
        )

    @classmethod
    def library(
        cls,
        reply_code: int,
        reply_text: str,
        cause: Optional[BaseException] = None,
        source: str = "connection",
    ) -> ShutdownReason:
        return cls(reply_code, reply_text, ShutdownInitiator.LIBRARY, source=source, cause=cause)

    @property
    def is_local(self) -> bool:
        return self.initiator is ShutdownInitiator.APPLICATION

    @property
    def is_clean(self) -> bool:
        return self.reply_code == spec.REPLY_SUCCESS

    def __str__(self) -> str:
        text = (
            f"{self.source} closed by {self.initiator.value}: "
            f"code={self.reply_code}, text={self.reply_text!r}"
        )
        if self.class_id or self.method_id:
            text += f", classId={self.class_id}, methodId={self.method_id}"
        if self.cause is not None:
            text += f", cause={self.cause!r}"
        return text


@dataclass(frozen=True)
class ShutdownReportEntry:
    """A secondary error observed while closing."""

    description: str
    exception: Optional[BaseException] = None

    def __str__(self) -> str:
        if self.exception is None:
            return self.description
        return f"{self.description}: {self.exception!r}"
