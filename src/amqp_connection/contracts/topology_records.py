"""Recorded broker entities, replayed after recovery."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class RecordedExchange:
    name: str
    exchange_type: str = "direct"
    durable: bool = False
    auto_delete: bool = False
    internal: bool = False
    arguments: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class RecordedQueue:
    """A declared queue; ``server_named`` queues get a fresh name on replay."""

    name: str
    durable: bool = False
    exclusive: bool = False
    auto_delete: bool = False
    arguments: Optional[Dict[str, Any]] = None
    server_named: bool = False


@dataclass(frozen=True)
class RecordedBinding:
    """A queue-to-exchange binding."""

    queue: str
    exchange: str
    routing_key: str = ""
    arguments: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)


@dataclass(frozen=True)
class RecordedConsumer:
    """An active consumer; ``server_named_tag`` consumers get a fresh tag on replay."""

    consumer_tag: str
    queue: str
    channel_number: int
    on_message_callback: Callable[..., None] = field(compare=False, hash=False)
    auto_ack: bool = False
    exclusive: bool = False
    arguments: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)
    server_named_tag: bool = False
