"""Per-connection state kept for replay after recovery."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class ChannelQos:
    prefetch_count: int = 0
    prefetch_size: int = 0
    global_qos: bool = False


class RecoveryRecord:
    """Which channels the application holds open, and their prefetch settings.

    Channels leave the record only when the application or the broker
    closes them; a forced teardown of the whole connection keeps them so
    they can be re-opened on the replacement.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: Dict[int, Optional[ChannelQos]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def channel_opened(self, channel_number: int) -> None:
        with self._lock:
            self._channels.setdefault(channel_number, None)

    def channel_closed(self, channel_number: int) -> None:
        with self._lock:
            self._channels.pop(channel_number, None)

    def record_qos(
        self, channel_number: int, prefetch_count: int, prefetch_size: int = 0, global_qos: bool = False
    ) -> None:
        with self._lock:
            if channel_number in self._channels:
                self._channels[channel_number] = ChannelQos(prefetch_count, prefetch_size, global_qos)

    def channel_numbers(self) -> List[int]:
        with self._lock:
            return sorted(self._channels)

    def qos_for(self, channel_number: int) -> Optional[ChannelQos]:
        with self._lock:
            return self._channels.get(channel_number)
