"""Default transport."""

from .tcp_transport import TcpTransport

__all__ = ["TcpTransport"]
