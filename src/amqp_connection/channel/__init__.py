"""Channels and the channel multiplexer."""

from .channel import Channel, ChannelState, OnMessageCallback
from .continuation import RpcContinuation
from .multiplexer import ChannelMultiplexer

__all__ = [
    "Channel",
    "ChannelMultiplexer",
    "ChannelState",
    "OnMessageCallback",
    "RpcContinuation",
]
