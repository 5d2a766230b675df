"""Frame codec backed by pika's frame marshalling."""

from __future__ import annotations

import struct
from typing import Any, Optional, Tuple

from pika import exceptions as pika_exceptions
from pika import frame as pika_frame

from amqp_connection.contracts import IFrameCodec
from amqp_connection.exceptions import FrameDecodeError


class PikaFrameCodec(IFrameCodec):
    """Encodes and decodes ``pika.frame`` objects."""

    def encode(self, frame: Any) -> bytes:
        return frame.marshal()

    def decode(self, data: bytes) -> Tuple[int, Optional[Any]]:
        try:
            return pika_frame.decode_frame(data)
        except (pika_exceptions.InvalidFrameError, KeyError, struct.error) as exc:
            raise FrameDecodeError(str(exc)) from exc
