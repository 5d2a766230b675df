"""Defines the contract for connection negotiation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from amqp_connection.config import ConnectionConfig
    from amqp_connection.connection.frame_stream import FrameStream


@dataclass(frozen=True)
class NegotiatedParameters:
    """Outcome of a successful handshake."""

    channel_max: int
    frame_max: int
    heartbeat: int
    mechanism: str
    server_properties: Dict[str, Any] = field(default_factory=dict)
    client_properties: Dict[str, Any] = field(default_factory=dict)
    known_hosts: List[str] = field(default_factory=list)


class IHandshake(ABC):
    """Runs protocol header, SASL exchange, tuning and vhost open."""

    @abstractmethod
    def negotiate(self, stream: FrameStream, config: ConnectionConfig) -> NegotiatedParameters:
        """Bring a freshly connected stream to the point where channels can be opened.

        Raises ``HandshakeError`` (or a subclass) when the broker refuses.
        """
