"""Heartbeat monitoring."""

from .monitor import DEFAULT_MISSED_HEARTBEATS, HeartbeatMonitor

__all__ = ["DEFAULT_MISSED_HEARTBEATS", "HeartbeatMonitor"]
