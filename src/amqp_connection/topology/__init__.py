"""Declared-topology records and the in-memory registry."""

from amqp_connection.contracts.topology_records import (
    RecordedBinding,
    RecordedConsumer,
    RecordedExchange,
    RecordedQueue,
)

from .in_memory_registry import InMemoryTopologyRegistry

__all__ = [
    "InMemoryTopologyRegistry",
    "RecordedBinding",
    "RecordedConsumer",
    "RecordedExchange",
    "RecordedQueue",
]
