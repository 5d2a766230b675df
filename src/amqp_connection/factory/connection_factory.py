"""Opening connections, with recovery attached when configured."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pika import exceptions as pika_exceptions

from amqp_connection.config import ConnectionConfig, Endpoint
from amqp_connection.connection import Connection
from amqp_connection.contracts import ITopologyRegistry
from amqp_connection.exceptions import AuthenticationFailureError, ConnectionOpenError
from amqp_connection.recovery import RecoveryEngine

from .connection_dependencies import ConnectionDependencies


class ConnectionFactory:
    """Creates started connections from one configuration.

    Endpoints are tried in order and the first successful handshake wins.
    With recovery enabled every connection shares one topology registry and
    is watched by a :class:`~amqp_connection.recovery.RecoveryEngine`.
    """

    def __init__(
        self,
        config: Optional[ConnectionConfig] = None,
        *,
        dependencies: Optional[ConnectionDependencies] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or ConnectionConfig()
        self.dependencies = dependencies or ConnectionDependencies()

    @classmethod
    def from_url(
        cls,
        url: Optional[str] = None,
        *,
        dependencies: Optional[ConnectionDependencies] = None,
        **overrides: Any,
    ) -> ConnectionFactory:
        return cls(ConnectionConfig.from_url(url, **overrides), dependencies=dependencies)

    def new_connection(self) -> Connection:
        """Open a connection to the first reachable endpoint."""
        topology: Optional[ITopologyRegistry] = None
        if self.config.recovery.enabled:
            topology = self.dependencies.make_topology_registry()

        last_error: Optional[BaseException] = None
        for endpoint in self.config.endpoints:
            try:
                connection = self._open(endpoint, topology)
            except AuthenticationFailureError:
                raise
            except (pika_exceptions.AMQPError, OSError) as exc:
                self.logger.warning("Could not connect to %s: %s", endpoint, exc)
                last_error = exc
                continue
            if topology is not None:
                engine = RecoveryEngine(
                    self.config,
                    lambda e: self._open(e, topology),
                    topology,
                    logger=self.logger,
                )
                engine.attach(connection)
            return connection

        endpoints = ", ".join(str(e) for e in self.config.endpoints)
        raise ConnectionOpenError(f"Could not connect to any of {endpoints}") from last_error

    def _open(self, endpoint: Endpoint, topology: Optional[ITopologyRegistry]) -> Connection:
        deps = self.dependencies
        connection = Connection(
            self.config,
            endpoint,
            transport=deps.make_transport(),
            codec=deps.make_codec(),
            handshake=deps.make_handshake(),
            topology=topology,
            logger=self.logger,
        )
        return connection.start()
