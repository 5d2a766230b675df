"""Default frame codec."""

from .pika_frame_codec import PikaFrameCodec

__all__ = ["PikaFrameCodec"]
