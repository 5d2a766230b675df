"""Connection.Blocked / Connection.Unblocked handling."""

from .gate import FlowControlGate

__all__ = ["FlowControlGate"]
