"""Errors raised by the connection core.

Every error derives from a ``pika.exceptions`` class so callers already
catching pika's hierarchy keep working.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pika import exceptions as pika_exceptions

if TYPE_CHECKING:
    from amqp_connection.shutdown.reason import ShutdownReason


class AMQPConnectionCoreError(pika_exceptions.AMQPError):
    """Base class for errors that originate in this package."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}: {self}"


class HandshakeError(pika_exceptions.AMQPConnectionError):
    """The protocol handshake failed; the connection never reached OPEN."""

    def __init__(self, message: str, *, reply_code: int = 0, reply_text: str = "") -> None:
        super().__init__(message)
        self.reply_code = reply_code
        self.reply_text = reply_text

    def __str__(self) -> str:
        return str(self.args[0])


class AuthenticationFailureError(HandshakeError):
    """The broker rejected the credentials or offered no usable mechanism."""


class ConnectionOpenError(pika_exceptions.AMQPConnectionError):
    """No endpoint could be connected to."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Unable to open connection"


class ConnectionNotOpenError(pika_exceptions.ConnectionWrongStateError):
    """An operation needed an OPEN connection."""

    def __init__(self, message: str, reason: Optional[ShutdownReason] = None) -> None:
        super().__init__(message)
        self.reason = reason

    def __str__(self) -> str:
        if self.reason is None:
            return str(self.args[0])
        return f"{self.args[0]} ({self.reason})"


class ProtocolViolationError(AMQPConnectionCoreError):
    """The peer broke the protocol; the connection is closed with ``reply_code``."""

    def __init__(self, message: str, reply_code: int) -> None:
        super().__init__(message)
        self.reply_code = reply_code


class UnknownChannelError(ProtocolViolationError):
    """A frame arrived for a channel number that is not in the channel table."""

    def __init__(self, channel_number: int, reply_code: int) -> None:
        super().__init__(f"Frame received for unknown channel {channel_number}", reply_code)
        self.channel_number = channel_number


class FrameDecodeError(AMQPConnectionCoreError):
    """The codec could not decode inbound bytes into a frame."""


class TransportError(pika_exceptions.StreamLostError):
    """The transport failed or reached end of stream."""


class MissedHeartbeatError(pika_exceptions.AMQPHeartbeatTimeout):
    """The peer stayed silent for longer than the heartbeat allowance."""


class RpcTimeoutError(AMQPConnectionCoreError):
    """A synchronous call did not receive its reply in time."""


class ChannelLimitExceededError(pika_exceptions.NoFreeChannels):
    """Every channel number up to ``channel_max`` is taken."""

    def __init__(self, channel_max: int) -> None:
        super().__init__(channel_max)
        self.channel_max = channel_max

    def __str__(self) -> str:
        return f"No free channel number (channel_max={self.channel_max})"


class ChannelAllocationError(AMQPConnectionCoreError):
    """A specific channel number was requested but cannot be used."""


class ChannelClosedError(pika_exceptions.ChannelWrongStateError):
    """An operation needed an OPEN channel."""

    def __init__(self, message: str, reason: Optional[ShutdownReason] = None) -> None:
        super().__init__(message)
        self.reason = reason

    def __str__(self) -> str:
        if self.reason is None:
            return str(self.args[0])
        return f"{self.args[0]} ({self.reason})"


class UnsupportedOperationError(AMQPConnectionCoreError):
    """The negotiated connection does not support the requested operation."""


class RecoveryError(AMQPConnectionCoreError):
    """Automatic recovery could not restore the connection."""


class ReaderThreadError(AMQPConnectionCoreError):
    """A blocking call was made on the thread that reads its reply.

    Event listeners run on the connection's reader thread; they may close
    channels and the connection, which then completes asynchronously, but
    cannot wait for a broker reply.
    """
