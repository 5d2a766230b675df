"""Plain TCP transport."""

from __future__ import annotations

import logging
import socket
from typing import Optional

from amqp_connection.config import Endpoint
from amqp_connection.contracts import ITransport


class TcpTransport(ITransport):
    """Blocking TCP socket with Nagle disabled."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._sock: Optional[socket.socket] = None

    def connect(self, endpoint: Endpoint, timeout: Optional[float] = None) -> None:
        self.logger.info("Connecting to %s:%s", endpoint.host, endpoint.port)
        sock = socket.create_connection((endpoint.host, endpoint.port), timeout=timeout)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(None)
        self._sock = sock

    def read(self, max_bytes: int) -> bytes:
        return self._socket().recv(max_bytes)

    def write(self, data: bytes) -> None:
        self._socket().sendall(data)

    def close(self) -> None:
        sock, self._sock = self._sock, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as exc:
            self.logger.debug("Socket shutdown failed: %s", exc)
        sock.close()
        self.logger.debug("Closed TCP transport")

    def _socket(self) -> socket.socket:
        if self._sock is None:
            raise ConnectionResetError("Transport is not connected")
        return self._sock
