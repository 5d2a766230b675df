"""Contract interfaces for the connection core and its collaborators."""

from .connection_interface import IConnection
from .frame_codec_interface import IFrameCodec
from .handshake_interface import IHandshake, NegotiatedParameters
from .topology_registry_interface import ITopologyRegistry
from .transport_interface import ITransport

__all__ = [
    "IConnection",
    "IFrameCodec",
    "IHandshake",
    "ITopologyRegistry",
    "ITransport",
    "NegotiatedParameters",
]
