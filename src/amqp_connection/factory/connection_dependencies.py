"""Factories for the collaborators a connection is built from."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from amqp_connection.codec import PikaFrameCodec
from amqp_connection.contracts import IFrameCodec, IHandshake, ITopologyRegistry, ITransport
from amqp_connection.handshake import AmqpHandshake
from amqp_connection.topology import InMemoryTopologyRegistry
from amqp_connection.transport import TcpTransport


@dataclass(frozen=True)
class ConnectionDependencies:
    """Bundles factory functions for connection wiring."""

    make_transport: Callable[[], ITransport] = field(default=TcpTransport)
    make_codec: Callable[[], IFrameCodec] = field(default=PikaFrameCodec)
    make_handshake: Callable[[], IHandshake] = field(default=AmqpHandshake)
    make_topology_registry: Callable[[], ITopologyRegistry] = field(default=InMemoryTopologyRegistry)
