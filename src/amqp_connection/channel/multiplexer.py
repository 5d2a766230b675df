"""Channel number allocation and inbound frame routing."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import pika.channel
from pika import spec

from amqp_connection.exceptions import (
    ChannelAllocationError,
    ChannelLimitExceededError,
    UnknownChannelError,
)
from amqp_connection.shutdown import ShutdownReason

from .channel import Channel

ChannelFactory = Callable[[int], Channel]


class ChannelMultiplexer:
    """Owns the channel table of one connection.

    Numbers run from 1 to ``channel_max``; channel 0 belongs to the
    connection itself. The table is guarded by the connection's lock so
    allocation from application threads and release from the read path
    never race.
    """

    def __init__(
        self,
        channel_max: int,
        lock: Optional[threading.RLock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.channel_max = channel_max or pika.channel.MAX_CHANNELS
        self.logger = logger or logging.getLogger(__name__)
        self._lock = lock or threading.RLock()
        self._channels: Dict[int, Channel] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def __contains__(self, channel_number: int) -> bool:
        with self._lock:
            return channel_number in self._channels

    def allocate(self, factory: ChannelFactory, channel_number: Optional[int] = None) -> Channel:
        """Create a channel via ``factory`` under the lowest free (or the requested) number."""
        with self._lock:
            if channel_number is None:
                number = self._lowest_free()
            else:
                if not 1 <= channel_number <= self.channel_max:
                    raise ChannelAllocationError(
                        f"Channel number {channel_number} outside 1..{self.channel_max}"
                    )
                if channel_number in self._channels:
                    raise ChannelAllocationError(f"Channel number {channel_number} is in use")
                number = channel_number
            channel = factory(number)
            self._channels[number] = channel
        self.logger.debug("Allocated channel %s", number)
        return channel

    def release(self, channel: Channel) -> bool:
        """Free ``channel``'s number if it still owns it."""
        with self._lock:
            if self._channels.get(channel.channel_number) is not channel:
                return False
            del self._channels[channel.channel_number]
        self.logger.debug("Released channel %s", channel.channel_number)
        return True

    def get(self, channel_number: int) -> Optional[Channel]:
        with self._lock:
            return self._channels.get(channel_number)

    def channels(self) -> List[Channel]:
        with self._lock:
            return list(self._channels.values())

    def open_channels(self) -> List[Channel]:
        return [c for c in self.channels() if c.is_open]

    def route(self, frame: Any) -> None:
        """Hand ``frame`` to its channel; unknown numbers are a protocol violation."""
        channel = self.get(frame.channel_number)
        if channel is None or channel.is_closed:
            raise UnknownChannelError(frame.channel_number, spec.CHANNEL_ERROR)
        channel.handle_frame(frame)

    def close_all(self, reason: ShutdownReason) -> List[Tuple[Channel, Exception]]:
        """Force-close and forget every channel; returns the ones that failed."""
        with self._lock:
            channels, self._channels = list(self._channels.values()), {}
        failures: List[Tuple[Channel, Exception]] = []
        for channel in channels:
            try:
                channel.force_close(reason)
            except Exception as exc:
                self.logger.warning("Failed to close channel %s: %s", channel.channel_number, exc)
                failures.append((channel, exc))
        return failures

    def _lowest_free(self) -> int:
        if len(self._channels) >= self.channel_max:
            raise ChannelLimitExceededError(self.channel_max)
        for number in range(1, len(self._channels) + 1):
            if number not in self._channels:
                return number
        return len(self._channels) + 1
