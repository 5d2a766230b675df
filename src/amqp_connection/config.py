"""Connection configuration consumed once at construction time."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import pika
from pika.connection import Parameters
from pika.credentials import PlainCredentials

URL_ENV_VARS = ("AMQP_URL", "RABBITMQ_URL")
DEFAULT_PORT = 5672


@dataclass(frozen=True)
class Endpoint:
    host: str = "localhost"
    port: int = DEFAULT_PORT

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class RecoveryConfig:
    """Automatic recovery settings.

    ``connect_attempts`` rounds are made over the endpoint list, waiting
    ``network_recovery_interval`` seconds before each round.
    """

    enabled: bool = False
    network_recovery_interval: float = 5.0
    connect_attempts: int = 3
    topology_recovery: bool = True

    def __post_init__(self) -> None:
        if self.network_recovery_interval < 0:
            raise ValueError("network_recovery_interval must not be negative")
        if self.connect_attempts < 1:
            raise ValueError("connect_attempts must be at least 1")


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything needed to open and run one logical connection.

    ``requested_heartbeat`` of None accepts the broker's proposal; 0 disables
    heartbeats. Channel and frame maxima are negotiated down to the
    broker's limits.
    """

    endpoints: Tuple[Endpoint, ...] = (Endpoint(),)
    virtual_host: str = "/"
    credentials: Any = field(default_factory=lambda: PlainCredentials("guest", "guest"))
    requested_heartbeat: Optional[int] = Parameters.DEFAULT_HEARTBEAT_TIMEOUT
    requested_channel_max: int = Parameters.DEFAULT_CHANNEL_MAX
    requested_frame_max: int = Parameters.DEFAULT_FRAME_MAX
    client_provided_name: Optional[str] = None
    client_properties: Dict[str, Any] = field(default_factory=dict)
    locale: str = Parameters.DEFAULT_LOCALE
    continuation_timeout: float = 20.0
    handshake_timeout: float = 10.0
    shutdown_timeout: float = 10.0
    missed_heartbeats: int = 2
    recovery: RecoveryConfig = field(default_factory=RecoveryConfig)

    def __post_init__(self) -> None:
        if not self.endpoints:
            raise ValueError("At least one endpoint is required")
        if self.requested_heartbeat is not None and self.requested_heartbeat < 0:
            raise ValueError("requested_heartbeat must not be negative")
        if self.missed_heartbeats < 1:
            raise ValueError("missed_heartbeats must be at least 1")

    @classmethod
    def from_url(cls, url: Optional[str] = None, **overrides: Any) -> ConnectionConfig:
        """Build a config from one or more comma-separated AMQP URLs.

        Falls back to the ``AMQP_URL`` and ``RABBITMQ_URL`` environment
        variables. Keyword overrides win over anything parsed from the URL.
        """
        raw = (url or _url_from_env() or "").strip()
        if not raw:
            raise ValueError(
                "AMQP URL must be provided via argument or the AMQP_URL / RABBITMQ_URL "
                "environment variables."
            )

        parsed = []
        for part in (p.strip() for p in raw.split(",")):
            if not part:
                continue
            try:
                parsed.append(pika.URLParameters(part))
            except ValueError as exc:
                raise ValueError(f"Invalid AMQP URL provided: {part}") from exc
        if not parsed:
            raise ValueError(f"Invalid AMQP URL provided: {raw}")

        first = parsed[0]
        values: Dict[str, Any] = {
            "endpoints": tuple(Endpoint(p.host, p.port) for p in parsed),
            "virtual_host": first.virtual_host,
            "credentials": first.credentials,
            "requested_heartbeat": first.heartbeat,
            "requested_channel_max": first.channel_max,
            "requested_frame_max": first.frame_max,
            "locale": first.locale,
            "recovery": RecoveryConfig(
                network_recovery_interval=first.retry_delay,
                connect_attempts=first.connection_attempts,
            ),
        }
        if first.client_properties:
            values["client_properties"] = dict(first.client_properties)
        values.update(overrides)
        return cls(**values)

    def with_recovery(self, **changes: Any) -> ConnectionConfig:
        return dataclasses.replace(self, recovery=dataclasses.replace(self.recovery, **changes))


def _url_from_env() -> Optional[str]:
    for name in URL_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return None
