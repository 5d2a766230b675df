"""Defines the contract for the declared-topology registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from .topology_records import (
    RecordedBinding,
    RecordedConsumer,
    RecordedExchange,
    RecordedQueue,
)


class ITopologyRegistry(ABC):
    """Remembers what the application declared so recovery can replay it."""

    @abstractmethod
    def record_exchange(self, exchange: RecordedExchange) -> None:
        """Remember an exchange declaration."""

    @abstractmethod
    def delete_exchange(self, name: str) -> None:
        """Forget an exchange and every binding to it."""

    @abstractmethod
    def record_queue(self, queue: RecordedQueue) -> None:
        """Remember a queue declaration."""

    @abstractmethod
    def delete_queue(self, name: str) -> None:
        """Forget a queue with its bindings and consumers."""

    @abstractmethod
    def record_binding(self, binding: RecordedBinding) -> None:
        """Remember a binding."""

    @abstractmethod
    def delete_binding(self, binding: RecordedBinding) -> None:
        """Forget a binding."""

    @abstractmethod
    def record_consumer(self, consumer: RecordedConsumer) -> None:
        """Remember a consumer registration."""

    @abstractmethod
    def delete_consumer(self, consumer_tag: str) -> None:
        """Forget a consumer."""

    @abstractmethod
    def rename_queue(self, old_name: str, new_name: str) -> None:
        """Re-point a queue and everything referring to it at ``new_name``."""

    @abstractmethod
    def exchanges(self) -> List[RecordedExchange]:
        """Recorded exchanges in declaration order."""

    @abstractmethod
    def queues(self) -> List[RecordedQueue]:
        """Recorded queues in declaration order."""

    @abstractmethod
    def bindings(self) -> List[RecordedBinding]:
        """Recorded bindings in declaration order."""

    @abstractmethod
    def consumers(self) -> List[RecordedConsumer]:
        """Recorded consumers in registration order."""
