"""Automatic connection recovery."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from pika import exceptions as pika_exceptions
from pika import spec

from amqp_connection.config import ConnectionConfig, Endpoint
from amqp_connection.contracts import ITopologyRegistry
from amqp_connection.events import (
    ConsumerTagChangedEvent,
    EventDispatcher,
    EventKind,
    Listener,
    QueueNameChangedEvent,
    RecoveryFailedEvent,
    RecoverySucceededEvent,
)
from amqp_connection.exceptions import RecoveryError
from amqp_connection.shutdown import ShutdownReason

from .record import RecoveryRecord

if TYPE_CHECKING:
    from amqp_connection.channel import Channel
    from amqp_connection.connection import Connection

Connect = Callable[[Endpoint], "Connection"]

FORWARDED_KINDS = (
    EventKind.SHUTDOWN,
    EventKind.BLOCKED,
    EventKind.UNBLOCKED,
    EventKind.CALLBACK_EXCEPTION,
)


class RecoveryEngine:
    """Replaces a failed connection with a new one and replays its state.

    The engine outlives every connection it manages. Listeners registered
    here keep receiving shutdown, blocked, unblocked and callback-exception
    events from whichever connection is current, plus the recovery events
    themselves. Only shutdowns the application did not ask for trigger a
    recovery run; each run happens on its own thread.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        connect: Connect,
        topology: ITopologyRegistry,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.config = config
        self.topology = topology
        self._connect = connect
        self._dispatcher = EventDispatcher(logger=self.logger)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._connection: Optional[Connection] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def connection(self) -> Optional[Connection]:
        return self._connection

    @property
    def recovering(self) -> bool:
        """True from the triggering shutdown until the run attaches a new connection or gives up."""
        return self._running

    def add_listener(self, kind: EventKind, listener: Listener) -> None:
        self._dispatcher.add_listener(kind, listener)

    def remove_listener(self, kind: EventKind, listener: Listener) -> None:
        self._dispatcher.remove_listener(kind, listener)

    def attach(self, connection: Connection) -> None:
        """Make ``connection`` the current one and start watching it."""
        if connection.recovery_record is None:
            connection.recovery_record = RecoveryRecord()
        connection.recovery = self
        with self._lock:
            self._connection = connection
        for kind in FORWARDED_KINDS:
            connection.add_listener(kind, self._forwarder(kind, connection))
        self.logger.debug("Recovery attached to %r", connection)

    def close(
        self,
        reply_code: int = spec.REPLY_SUCCESS,
        reply_text: str = "Goodbye",
        timeout: Optional[float] = None,
    ) -> None:
        """Stop recovering and close the current connection."""
        self._stop.set()
        connection = self._connection
        if connection is not None:
            connection.close(reply_code, reply_text, timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def recover(self, failed: Connection) -> Optional[Connection]:
        """Run one recovery: reconnect, replay, then swap in the new connection.

        Returns the new connection, or None when recovery failed or was
        cancelled; the outcome is also reported through the recovery events.
        """
        record = failed.recovery_record or RecoveryRecord()
        self.logger.info("Recovering connection to %s (%d channel(s))", failed.endpoint, len(record))
        try:
            connection, channels = self._establish(record)
        except Exception as exc:
            self.logger.error("Recovery failed", exc_info=True)
            with self._lock:
                self._running = False
            self._dispatcher.dispatch(EventKind.RECOVERY_FAILED, RecoveryFailedEvent(exc))
            return None
        with self._lock:
            self._running = False
        self.attach(connection)
        self.logger.info("Recovered connection to %s", connection.endpoint)
        self._dispatcher.dispatch(EventKind.RECOVERY_SUCCEEDED, RecoverySucceededEvent(connection, channels))
        return connection

    def _establish(self, record: RecoveryRecord) -> Tuple[Connection, Dict[int, Channel]]:
        connection = self._reconnect()
        try:
            channels = self._replay(record, connection)
            if self._stop.is_set():
                raise RecoveryError("Recovery cancelled")
        except Exception:
            connection.abort()
            raise
        return connection, channels

    # Triggering

    def _forwarder(self, kind: EventKind, connection: Connection) -> Listener:
        def forward(payload: Any) -> None:
            self._dispatcher.dispatch(kind, payload)
            if kind is EventKind.SHUTDOWN:
                self._on_shutdown(connection, payload)

        return forward

    def _on_shutdown(self, connection: Connection, reason: ShutdownReason) -> None:
        if reason.is_local or self._stop.is_set():
            return
        with self._lock:
            if connection is not self._connection or self._running:
                return
            self._running = True
            self._thread = threading.Thread(
                target=self.recover, args=(connection,), name="amqp-recovery", daemon=True
            )
            self._thread.start()

    # Reconnect

    def _reconnect(self) -> Connection:
        settings = self.config.recovery
        last_error: Optional[BaseException] = None
        for attempt in range(1, settings.connect_attempts + 1):
            if self._stop.wait(settings.network_recovery_interval):
                raise RecoveryError("Recovery cancelled")
            for endpoint in self.config.endpoints:
                try:
                    return self._connect(endpoint)
                except (pika_exceptions.AMQPError, OSError) as exc:
                    last_error = exc
                    self.logger.warning("Reconnect attempt %d to %s failed: %s", attempt, endpoint, exc)
        raise RecoveryError(
            f"Could not reconnect after {settings.connect_attempts} attempt(s)"
        ) from last_error

    # Replay

    def _replay(self, record: RecoveryRecord, connection: Connection) -> Dict[int, Channel]:
        connection.recovery_record = RecoveryRecord()
        numbers = record.channel_numbers()
        if self.config.recovery.topology_recovery:
            self._replay_topology(connection, numbers)

        channels: Dict[int, Channel] = {}
        for number in numbers:
            channel = connection.channel(number)
            qos = record.qos_for(number)
            if qos is not None:
                channel.basic_qos(qos.prefetch_count, qos.prefetch_size, qos.global_qos)
            channels[number] = channel

        if self.config.recovery.topology_recovery:
            self._replay_consumers(channels)
        return channels

    def _replay_topology(self, connection: Connection, reserved: List[int]) -> None:
        spare_number = next(n for n in itertools.count(1) if n not in reserved)
        spare = connection.channel(spare_number)
        for exchange in self.topology.exchanges():
            self.logger.debug("Redeclaring exchange %s", exchange.name)
            spare.rpc(
                spec.Exchange.Declare(
                    exchange=exchange.name,
                    type=exchange.exchange_type,
                    durable=exchange.durable,
                    auto_delete=exchange.auto_delete,
                    internal=exchange.internal,
                    arguments=exchange.arguments,
                ),
                [spec.Exchange.DeclareOk],
            )
        for queue in self.topology.queues():
            self.logger.debug("Redeclaring queue %s", queue.name)
            declare_ok = spare.rpc(
                spec.Queue.Declare(
                    queue="" if queue.server_named else queue.name,
                    durable=queue.durable,
                    exclusive=queue.exclusive,
                    auto_delete=queue.auto_delete,
                    arguments=queue.arguments,
                ),
                [spec.Queue.DeclareOk],
            )
            if declare_ok.queue != queue.name:
                self.logger.info("Server-named queue %s is now %s", queue.name, declare_ok.queue)
                self.topology.rename_queue(queue.name, declare_ok.queue)
                self._dispatcher.dispatch(
                    EventKind.QUEUE_NAME_CHANGED, QueueNameChangedEvent(queue.name, declare_ok.queue)
                )
        for binding in self.topology.bindings():
            self.logger.debug("Rebinding %s to %s", binding.queue, binding.exchange)
            spare.rpc(
                spec.Queue.Bind(
                    queue=binding.queue,
                    exchange=binding.exchange,
                    routing_key=binding.routing_key,
                    arguments=binding.arguments,
                ),
                [spec.Queue.BindOk],
            )
        spare.close()

    def _replay_consumers(self, channels: Dict[int, Channel]) -> None:
        for consumer in self.topology.consumers():
            channel = channels.get(consumer.channel_number)
            if channel is None:
                self.logger.warning(
                    "Dropping consumer %s: channel %s was not recovered",
                    consumer.consumer_tag,
                    consumer.channel_number,
                )
                self.topology.delete_consumer(consumer.consumer_tag)
                continue
            new_tag = channel.basic_consume(
                consumer.queue,
                consumer.on_message_callback,
                auto_ack=consumer.auto_ack,
                exclusive=consumer.exclusive,
                consumer_tag="" if consumer.server_named_tag else consumer.consumer_tag,
                arguments=consumer.arguments,
            )
            if new_tag != consumer.consumer_tag:
                self.topology.delete_consumer(consumer.consumer_tag)
                self._dispatcher.dispatch(
                    EventKind.CONSUMER_TAG_CHANGED, ConsumerTagChangedEvent(consumer.consumer_tag, new_tag)
                )
