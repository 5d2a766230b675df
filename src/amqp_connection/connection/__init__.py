"""The connection state machine and its frame stream."""

from .amqp_connection import REFRESHABLE_MECHANISMS, Connection
from .frame_stream import FrameStream
from .state import ConnectionState

__all__ = [
    "Connection",
    "ConnectionState",
    "FrameStream",
    "REFRESHABLE_MECHANISMS",
]
