"""Defines the contract for the AMQP frame codec."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple


class IFrameCodec(ABC):
    """Turns frames into bytes and back.

    Frames are ``pika.frame`` objects: every frame has a ``channel_number``
    and method frames carry a ``pika.spec`` method instance.
    """

    @abstractmethod
    def encode(self, frame: Any) -> bytes:
        """Serialize one frame."""

    @abstractmethod
    def decode(self, data: bytes) -> Tuple[int, Optional[Any]]:
        """Decode the first frame in ``data``.

        Returns ``(bytes_consumed, frame)``, or ``(0, None)`` when ``data``
        does not yet hold a complete frame.
        """
