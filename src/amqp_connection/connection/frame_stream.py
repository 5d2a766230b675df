"""Frame-level reads and writes over a transport."""

from __future__ import annotations

import threading
from typing import Any, Iterable

from amqp_connection.contracts import IFrameCodec, ITransport
from amqp_connection.exceptions import TransportError

READ_SIZE = 65536


class FrameStream:
    """Buffers transport bytes into frames and serializes frame writes.

    Reads happen on one thread at a time (the handshake, then the reader
    loop); writes may come from any thread and are serialized here.
    """

    def __init__(self, transport: ITransport, codec: IFrameCodec) -> None:
        self.transport = transport
        self.codec = codec
        self._buffer = b""
        self._write_lock = threading.Lock()
        self.frames_read = 0
        self.frames_written = 0

    def read_frame(self) -> Any:
        """Block until a whole frame is decoded.

        Raises ``TransportError`` on end of stream and lets ``OSError`` from
        the transport propagate.
        """
        while True:
            consumed, frame = self.codec.decode(self._buffer)
            if frame is not None:
                self._buffer = self._buffer[consumed:]
                self.frames_read += 1
                return frame
            chunk = self.transport.read(READ_SIZE)
            if not chunk:
                raise TransportError("End of stream")
            self._buffer += chunk

    def write_frame(self, frame: Any) -> None:
        self.write_frames((frame,))

    def write_frames(self, frames: Iterable[Any]) -> None:
        """Write ``frames`` back to back with no other writer interleaving."""
        encoded = [self.codec.encode(f) for f in frames]
        with self._write_lock:
            self.transport.write(b"".join(encoded))
            self.frames_written += len(encoded)

    def close(self) -> None:
        self.transport.close()
