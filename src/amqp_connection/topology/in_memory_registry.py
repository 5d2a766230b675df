"""In-process topology registry."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Dict, List, Optional

from amqp_connection.contracts import ITopologyRegistry
from amqp_connection.contracts.topology_records import (
    RecordedBinding,
    RecordedConsumer,
    RecordedExchange,
    RecordedQueue,
)


class InMemoryTopologyRegistry(ITopologyRegistry):
    """Keeps declarations in insertion-ordered dicts guarded by a lock."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._exchanges: Dict[str, RecordedExchange] = {}
        self._queues: Dict[str, RecordedQueue] = {}
        self._bindings: Dict[RecordedBinding, RecordedBinding] = {}
        self._consumers: Dict[str, RecordedConsumer] = {}

    def record_exchange(self, exchange: RecordedExchange) -> None:
        with self._lock:
            self._exchanges[exchange.name] = exchange

    def delete_exchange(self, name: str) -> None:
        with self._lock:
            self._exchanges.pop(name, None)
            for binding in [b for b in self._bindings if b.exchange == name]:
                del self._bindings[binding]

    def record_queue(self, queue: RecordedQueue) -> None:
        with self._lock:
            self._queues[queue.name] = queue

    def delete_queue(self, name: str) -> None:
        with self._lock:
            self._queues.pop(name, None)
            for binding in [b for b in self._bindings if b.queue == name]:
                del self._bindings[binding]
            for tag in [t for t, c in self._consumers.items() if c.queue == name]:
                del self._consumers[tag]

    def record_binding(self, binding: RecordedBinding) -> None:
        with self._lock:
            self._bindings[binding] = binding

    def delete_binding(self, binding: RecordedBinding) -> None:
        with self._lock:
            self._bindings.pop(binding, None)

    def record_consumer(self, consumer: RecordedConsumer) -> None:
        with self._lock:
            self._consumers[consumer.consumer_tag] = consumer

    def delete_consumer(self, consumer_tag: str) -> None:
        with self._lock:
            self._consumers.pop(consumer_tag, None)

    def rename_queue(self, old_name: str, new_name: str) -> None:
        if old_name == new_name:
            return
        with self._lock:
            queue = self._queues.pop(old_name, None)
            if queue is not None:
                self._queues[new_name] = dataclasses.replace(queue, name=new_name)
            self._bindings = {
                renamed: renamed
                for renamed in (
                    dataclasses.replace(b, queue=new_name) if b.queue == old_name else b
                    for b in self._bindings
                )
            }
            for tag, consumer in list(self._consumers.items()):
                if consumer.queue == old_name:
                    self._consumers[tag] = dataclasses.replace(consumer, queue=new_name)
        self.logger.debug("Renamed recorded queue %s -> %s", old_name, new_name)

    def exchanges(self) -> List[RecordedExchange]:
        with self._lock:
            return list(self._exchanges.values())

    def queues(self) -> List[RecordedQueue]:
        with self._lock:
            return list(self._queues.values())

    def bindings(self) -> List[RecordedBinding]:
        with self._lock:
            return list(self._bindings)

    def consumers(self) -> List[RecordedConsumer]:
        with self._lock:
            return list(self._consumers.values())
