"""Connection construction."""

from .connection_dependencies import ConnectionDependencies
from .connection_factory import ConnectionFactory

__all__ = ["ConnectionDependencies", "ConnectionFactory"]
