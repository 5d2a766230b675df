"""Automatic recovery of failed connections."""

from .engine import RecoveryEngine
from .record import ChannelQos, RecoveryRecord

__all__ = ["ChannelQos", "RecoveryEngine", "RecoveryRecord"]
