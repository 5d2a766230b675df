"""AMQP 0-9-1 client connection core: connection lifecycle, channels and recovery."""

__version__ = "0.1.0"

from .channel import Channel, ChannelState
from .config import ConnectionConfig, Endpoint, RecoveryConfig
from .connection import Connection, ConnectionState
from .contracts import IConnection, IFrameCodec, IHandshake, ITopologyRegistry, ITransport
from .events import EventKind
from .factory import ConnectionDependencies, ConnectionFactory
from .recovery import RecoveryEngine
from .shutdown import ShutdownInitiator, ShutdownReason, ShutdownReportEntry

__all__ = [
    "Channel",
    "ChannelState",
    "Connection",
    "ConnectionConfig",
    "ConnectionDependencies",
    "ConnectionFactory",
    "ConnectionState",
    "Endpoint",
    "EventKind",
    "IConnection",
    "IFrameCodec",
    "IHandshake",
    "ITopologyRegistry",
    "ITransport",
    "RecoveryConfig",
    "RecoveryEngine",
    "ShutdownInitiator",
    "ShutdownReason",
    "ShutdownReportEntry",
    "__version__",
]
