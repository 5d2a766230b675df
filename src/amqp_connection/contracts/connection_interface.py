"""Defines the contract for an AMQP connection."""

from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type

if TYPE_CHECKING:
    from amqp_connection.channel import Channel
    from amqp_connection.config import Endpoint
    from amqp_connection.events import EventKind, Listener
    from amqp_connection.shutdown import ShutdownReason, ShutdownReportEntry


class IConnection(ABC):
    """One logical broker session multiplexing many channels."""

    @property
    @abstractmethod
    def channel_max(self) -> int:
        """Negotiated maximum channel number (0 means no server limit)."""

    @property
    @abstractmethod
    def frame_max(self) -> int:
        """Negotiated maximum frame size in bytes."""

    @property
    @abstractmethod
    def heartbeat(self) -> int:
        """Negotiated heartbeat interval in seconds (0 means disabled)."""

    @property
    @abstractmethod
    def client_properties(self) -> Dict[str, Any]:
        """Properties this client sent during the handshake."""

    @property
    @abstractmethod
    def server_properties(self) -> Dict[str, Any]:
        """Properties the broker sent during the handshake."""

    @property
    @abstractmethod
    def client_provided_name(self) -> Optional[str]:
        """Application-chosen connection name shown in the broker UI."""

    @property
    @abstractmethod
    def endpoint(self) -> Endpoint:
        """Endpoint this connection is attached to."""

    @property
    @abstractmethod
    def known_hosts(self) -> List[str]:
        """Alternate hosts advertised by the broker."""

    @property
    @abstractmethod
    def close_reason(self) -> Optional[ShutdownReason]:
        """Why the connection closed, or None while it is usable."""

    @property
    @abstractmethod
    def shutdown_report(self) -> List[ShutdownReportEntry]:
        """Secondary errors observed while closing."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether new channels can be created."""

    @abstractmethod
    def channel(self, channel_number: Optional[int] = None) -> Channel:
        """Open a channel and wait for the broker to confirm it."""

    @abstractmethod
    def update_secret(self, new_secret: str, reason: str) -> None:
        """Refresh the credentials of an open connection."""

    @abstractmethod
    def close(
        self,
        reply_code: int = 200,
        reply_text: str = "Goodbye",
        timeout: Optional[float] = None,
    ) -> None:
        """Close the connection and every channel on it."""

    @abstractmethod
    def abort(
        self,
        reply_code: int = 200,
        reply_text: str = "Connection close forced",
        timeout: Optional[float] = None,
    ) -> None:
        """Close, swallowing I/O errors raised while closing."""

    @abstractmethod
    def add_listener(self, kind: EventKind, listener: Listener) -> None:
        """Subscribe to a lifecycle event."""

    @abstractmethod
    def remove_listener(self, kind: EventKind, listener: Listener) -> None:
        """Unsubscribe from a lifecycle event."""

    @abstractmethod
    def handle_connection_blocked(self, reason: str) -> None:
        """Apply a broker block notification."""

    @abstractmethod
    def handle_connection_unblocked(self) -> None:
        """Apply a broker unblock notification."""

    def __enter__(self) -> IConnection:
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()
