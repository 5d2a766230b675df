"""Defines the contract for the byte-stream transport."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from amqp_connection.config import Endpoint


class ITransport(ABC):
    """A duplex byte stream to one broker endpoint.

    I/O failures are reported by raising ``OSError``; ``read`` returns an
    empty ``bytes`` at end of stream.
    """

    @abstractmethod
    def connect(self, endpoint: Endpoint, timeout: Optional[float] = None) -> None:
        """Open the stream to ``endpoint``."""

    @abstractmethod
    def read(self, max_bytes: int) -> bytes:
        """Block until some bytes are available and return at most ``max_bytes`` of them."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Write all of ``data``."""

    @abstractmethod
    def close(self) -> None:
        """Close the stream; must be safe to call more than once."""
