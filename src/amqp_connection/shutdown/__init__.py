"""Shutdown reasons, report entries and the close handshake bookkeeping."""

from .protocol import FORCED_CLOSE_DESCRIPTION, ShutdownProtocol
from .reason import SOCKET_ERROR_CLOSE_CODE, ShutdownInitiator, ShutdownReason, ShutdownReportEntry

__all__ = [
    "FORCED_CLOSE_DESCRIPTION",
    "SOCKET_ERROR_CLOSE_CODE",
    "ShutdownInitiator",
    "ShutdownProtocol",
    "ShutdownReason",
    "ShutdownReportEntry",
]
