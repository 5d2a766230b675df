"""A logical channel multiplexed over a connection."""

from __future__ import annotations

import enum
import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Type

from pika import frame as pika_frame
from pika import spec

from amqp_connection.contracts.topology_records import (
    RecordedBinding,
    RecordedConsumer,
    RecordedExchange,
    RecordedQueue,
)
from amqp_connection.exceptions import (
    ChannelClosedError,
    ConnectionNotOpenError,
    ProtocolViolationError,
    ReaderThreadError,
)
from amqp_connection.shutdown import ShutdownReason

from .continuation import RpcContinuation

if TYPE_CHECKING:
    from amqp_connection.connection import Connection

OnMessageCallback = Callable[["Channel", Any, Any, bytes], None]

CONTENT_METHODS = (spec.Basic.Deliver, spec.Basic.Return, spec.Basic.GetOk)


class ChannelState(enum.Enum):
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class _Content:
    """A content-bearing method waiting for its header and body frames."""

    def __init__(self, method: Any) -> None:
        self.method = method
        self.properties: Any = None
        self.body_size: Optional[int] = None
        self.fragments: List[bytes] = []
        self.received = 0

    @property
    def complete(self) -> bool:
        return self.body_size is not None and self.received >= self.body_size

    @property
    def body(self) -> bytes:
        return b"".join(self.fragments)


class Channel:
    """A channel owned by a :class:`~amqp_connection.connection.Connection`.

    At most one synchronous method is outstanding per channel; concurrent
    callers queue on the channel's RPC lock. Inbound frames are handed in
    by the connection's read path through :meth:`handle_frame`.
    """

    def __init__(
        self,
        connection: Connection,
        channel_number: int,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.connection = connection
        self.channel_number = channel_number
        self._lock = threading.Lock()
        self._rpc_lock = threading.Lock()
        self._state = ChannelState.OPENING
        self._close_reason: Optional[ShutdownReason] = None
        self._closing_reason: Optional[ShutdownReason] = None
        self._continuations: List[RpcContinuation] = []
        self._consumers: Dict[str, OnMessageCallback] = {}
        self._content: Optional[_Content] = None

    def __repr__(self) -> str:
        return f"<Channel number={self.channel_number} state={self._state.value}>"

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def close_reason(self) -> Optional[ShutdownReason]:
        return self._close_reason

    @property
    def is_open(self) -> bool:
        return self._state is ChannelState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state is ChannelState.CLOSED

    @property
    def consumer_tags(self) -> List[str]:
        with self._lock:
            return list(self._consumers)

    # Lifecycle

    def open(self, timeout: Optional[float] = None) -> None:
        self._call(spec.Channel.Open(), [spec.Channel.OpenOk], timeout)
        with self._lock:
            if self._state is ChannelState.OPENING:
                self._state = ChannelState.OPEN
        self.logger.debug("Channel %s opened", self.channel_number)

    def close(
        self,
        reply_code: int = spec.REPLY_SUCCESS,
        reply_text: str = "Goodbye",
        timeout: Optional[float] = None,
    ) -> None:
        """Run the close handshake; a no-op on a closing or closed channel."""
        if self.connection.in_reader_thread:
            self.close_nowait(reply_code, reply_text)
            return
        reason = ShutdownReason.application(reply_code, reply_text, source=self._source)
        with self._lock:
            if self._state in (ChannelState.CLOSING, ChannelState.CLOSED):
                return
            self._state = ChannelState.CLOSING
            self._closing_reason = reason
        try:
            self._call(
                spec.Channel.Close(reply_code, reply_text, 0, 0), [spec.Channel.CloseOk], timeout
            )
        except (ChannelClosedError, ConnectionNotOpenError):
            if self.is_closed:
                return
            raise
        self._complete_close(reason, forget=True)

    def close_nowait(self, reply_code: int = spec.REPLY_SUCCESS, reply_text: str = "Goodbye") -> None:
        """Send ``Channel.Close`` without waiting for the broker.

        The number stays taken until ``Channel.CloseOk`` arrives so a late
        reply can never reach a channel that reuses it.
        """
        reason = ShutdownReason.application(reply_code, reply_text, source=self._source)
        expired = RpcContinuation((spec.Channel.CloseOk,))
        expired.valid = False
        with self._lock:
            if self._state in (ChannelState.CLOSING, ChannelState.CLOSED):
                return
            self._state = ChannelState.CLOSING
            self._closing_reason = reason
            self._continuations.append(expired)
        try:
            self.connection.send_method(self.channel_number, spec.Channel.Close(reply_code, reply_text, 0, 0))
        except (OSError, ConnectionNotOpenError) as exc:
            self.logger.debug("Could not send close for channel %s: %s", self.channel_number, exc)
            self._complete_close(reason, forget=True)

    def force_close(self, reason: ShutdownReason) -> None:
        """Mark the channel closed without talking to the broker."""
        error = ConnectionNotOpenError(f"Connection closed; channel {self.channel_number} is unusable", reason)
        self._finish(reason, error)

    # Synchronous methods

    def rpc(self, method: Any, replies: Sequence[Type[Any]], timeout: Optional[float] = None) -> Any:
        """Send ``method`` and wait for one of ``replies``."""
        self._ensure_open()
        return self._call(method, replies, timeout)

    def exchange_declare(
        self,
        exchange: str,
        exchange_type: str = "direct",
        durable: bool = False,
        auto_delete: bool = False,
        internal: bool = False,
        passive: bool = False,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        declare_ok = self.rpc(
            spec.Exchange.Declare(
                exchange=exchange,
                type=exchange_type,
                passive=passive,
                durable=durable,
                auto_delete=auto_delete,
                internal=internal,
                arguments=arguments,
            ),
            [spec.Exchange.DeclareOk],
        )
        registry = self.connection.topology
        if registry is not None and not passive:
            registry.record_exchange(
                RecordedExchange(exchange, exchange_type, durable, auto_delete, internal, arguments)
            )
        return declare_ok

    def exchange_delete(self, exchange: str, if_unused: bool = False) -> Any:
        delete_ok = self.rpc(
            spec.Exchange.Delete(exchange=exchange, if_unused=if_unused), [spec.Exchange.DeleteOk]
        )
        if self.connection.topology is not None:
            self.connection.topology.delete_exchange(exchange)
        return delete_ok

    def queue_declare(
        self,
        queue: str = "",
        durable: bool = False,
        exclusive: bool = False,
        auto_delete: bool = False,
        passive: bool = False,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Declare a queue; an empty name asks the broker to generate one."""
        declare_ok = self.rpc(
            spec.Queue.Declare(
                queue=queue,
                passive=passive,
                durable=durable,
                exclusive=exclusive,
                auto_delete=auto_delete,
                arguments=arguments,
            ),
            [spec.Queue.DeclareOk],
        )
        registry = self.connection.topology
        if registry is not None and not passive:
            registry.record_queue(
                RecordedQueue(
                    declare_ok.queue,
                    durable=durable,
                    exclusive=exclusive,
                    auto_delete=auto_delete,
                    arguments=arguments,
                    server_named=not queue,
                )
            )
        return declare_ok

    def queue_delete(self, queue: str, if_unused: bool = False, if_empty: bool = False) -> Any:
        delete_ok = self.rpc(
            spec.Queue.Delete(queue=queue, if_unused=if_unused, if_empty=if_empty),
            [spec.Queue.DeleteOk],
        )
        if self.connection.topology is not None:
            self.connection.topology.delete_queue(queue)
        return delete_ok

    def queue_bind(
        self,
        queue: str,
        exchange: str,
        routing_key: Optional[str] = None,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if routing_key is None:
            routing_key = queue
        bind_ok = self.rpc(
            spec.Queue.Bind(queue=queue, exchange=exchange, routing_key=routing_key, arguments=arguments),
            [spec.Queue.BindOk],
        )
        if self.connection.topology is not None:
            self.connection.topology.record_binding(RecordedBinding(queue, exchange, routing_key, arguments))
        return bind_ok

    def queue_unbind(
        self,
        queue: str,
        exchange: str,
        routing_key: Optional[str] = None,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if routing_key is None:
            routing_key = queue
        unbind_ok = self.rpc(
            spec.Queue.Unbind(queue=queue, exchange=exchange, routing_key=routing_key, arguments=arguments),
            [spec.Queue.UnbindOk],
        )
        if self.connection.topology is not None:
            self.connection.topology.delete_binding(RecordedBinding(queue, exchange, routing_key))
        return unbind_ok

    def basic_qos(self, prefetch_count: int = 0, prefetch_size: int = 0, global_qos: bool = False) -> Any:
        qos_ok = self.rpc(
            spec.Basic.Qos(prefetch_size=prefetch_size, prefetch_count=prefetch_count, global_qos=global_qos),
            [spec.Basic.QosOk],
        )
        record = self.connection.recovery_record
        if record is not None:
            record.record_qos(self.channel_number, prefetch_count, prefetch_size, global_qos)
        return qos_ok

    def basic_consume(
        self,
        queue: str,
        on_message_callback: OnMessageCallback,
        auto_ack: bool = False,
        exclusive: bool = False,
        consumer_tag: str = "",
        arguments: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Start a consumer and return its tag (generated by the broker when empty)."""

        def register(consume_ok: Any) -> None:
            with self._lock:
                self._consumers[consume_ok.consumer_tag] = on_message_callback

        self._ensure_open()
        consume_ok = self._call(
            spec.Basic.Consume(
                queue=queue,
                consumer_tag=consumer_tag,
                no_ack=auto_ack,
                exclusive=exclusive,
                arguments=arguments,
            ),
            [spec.Basic.ConsumeOk],
            on_reply=register,
        )
        tag = consume_ok.consumer_tag
        if self.connection.topology is not None:
            self.connection.topology.record_consumer(
                RecordedConsumer(
                    consumer_tag=tag,
                    queue=queue,
                    channel_number=self.channel_number,
                    on_message_callback=on_message_callback,
                    auto_ack=auto_ack,
                    exclusive=exclusive,
                    arguments=arguments,
                    server_named_tag=not consumer_tag,
                )
            )
        self.logger.info("Consumer %s started on queue %s", tag, queue)
        return str(tag)

    def basic_cancel(self, consumer_tag: str) -> Any:
        cancel_ok = self.rpc(spec.Basic.Cancel(consumer_tag=consumer_tag), [spec.Basic.CancelOk])
        self._forget_consumer(consumer_tag)
        return cancel_ok

    # Asynchronous methods

    def basic_publish(
        self,
        exchange: str,
        routing_key: str,
        body: bytes,
        properties: Optional[spec.BasicProperties] = None,
        mandatory: bool = False,
    ) -> None:
        """Publish a message; held back, not rejected, while the broker blocks the connection."""
        self._ensure_open()
        self.connection.send_content(
            self.channel_number,
            spec.Basic.Publish(exchange=exchange, routing_key=routing_key, mandatory=mandatory),
            properties or spec.BasicProperties(),
            body,
        )

    def basic_ack(self, delivery_tag: int = 0, multiple: bool = False) -> None:
        self._ensure_open()
        self.connection.send_method(self.channel_number, spec.Basic.Ack(delivery_tag=delivery_tag, multiple=multiple))

    def basic_nack(self, delivery_tag: int = 0, multiple: bool = False, requeue: bool = True) -> None:
        self._ensure_open()
        self.connection.send_method(
            self.channel_number,
            spec.Basic.Nack(delivery_tag=delivery_tag, multiple=multiple, requeue=requeue),
        )

    # Read path

    def handle_frame(self, frame: Any) -> None:
        """Process one inbound frame. Runs on the connection's reader thread."""
        if isinstance(frame, pika_frame.Method):
            self._handle_method(frame.method)
        elif isinstance(frame, pika_frame.Header):
            self._handle_header(frame)
        elif isinstance(frame, pika_frame.Body):
            self._handle_body(frame)
        else:
            raise ProtocolViolationError(f"Unexpected frame on channel {self.channel_number}: {frame!r}", spec.UNEXPECTED_FRAME)

    def _handle_method(self, method: Any) -> None:
        if self._content is not None:
            raise ProtocolViolationError(
                f"{method.NAME} interrupted content on channel {self.channel_number}", spec.UNEXPECTED_FRAME
            )
        if isinstance(method, CONTENT_METHODS):
            self._content = _Content(method)
        elif isinstance(method, spec.Channel.Close):
            self._on_peer_close(method)
        elif isinstance(method, spec.Channel.Flow):
            self.connection.send_method(self.channel_number, spec.Channel.FlowOk(active=method.active))
        elif isinstance(method, spec.Basic.Cancel):
            self.logger.info("Broker cancelled consumer %s on channel %s", method.consumer_tag, self.channel_number)
            self._forget_consumer(method.consumer_tag)
            if not method.nowait:
                self.connection.send_method(self.channel_number, spec.Basic.CancelOk(consumer_tag=method.consumer_tag))
        elif not self._resolve(method):
            self.logger.warning("Ignoring unexpected %s on channel %s", method.NAME, self.channel_number)

    def _handle_header(self, frame: Any) -> None:
        content = self._content
        if content is None or content.body_size is not None:
            raise ProtocolViolationError(
                f"Unexpected content header on channel {self.channel_number}", spec.UNEXPECTED_FRAME
            )
        content.properties = frame.properties
        content.body_size = frame.body_size
        if content.complete:
            self._deliver(content)

    def _handle_body(self, frame: Any) -> None:
        content = self._content
        if content is None or content.body_size is None:
            raise ProtocolViolationError(
                f"Unexpected content body on channel {self.channel_number}", spec.UNEXPECTED_FRAME
            )
        content.fragments.append(frame.fragment)
        content.received += len(frame.fragment)
        if content.complete:
            self._deliver(content)

    def _deliver(self, content: _Content) -> None:
        self._content = None
        method = content.method
        if not isinstance(method, spec.Basic.Deliver):
            self.logger.warning(
                "Discarding %s on channel %s (%d bytes)", method.NAME, self.channel_number, len(content.body)
            )
            return
        with self._lock:
            callback = self._consumers.get(method.consumer_tag)
        if callback is None:
            self.logger.warning("No consumer for tag %s on channel %s", method.consumer_tag, self.channel_number)
            return
        properties, body = content.properties, content.body

        def run() -> None:
            try:
                callback(self, method, properties, body)
            except Exception as exc:
                self.logger.error("Consumer %s raised", method.consumer_tag, exc_info=True)
                self.connection.report_callback_exception(
                    exc, {"channel": self.channel_number, "consumer_tag": method.consumer_tag}
                )

        self.connection.submit_delivery(run)

    def _resolve(self, method: Any) -> bool:
        with self._lock:
            index = next((i for i, c in enumerate(self._continuations) if c.accepts(method)), None)
            if index is None:
                return False
            continuation = self._continuations[index]
            del self._continuations[: index + 1]
        if continuation.valid:
            continuation.resolve(method)
        else:
            self.logger.debug("Discarding late %s on channel %s", method.NAME, self.channel_number)
            closing_reason = self._closing_reason
            if isinstance(method, spec.Channel.CloseOk) and closing_reason is not None:
                self._complete_close(closing_reason, forget=True)
        return True

    def _on_peer_close(self, method: Any) -> None:
        reason = ShutdownReason.from_close_method(method, source=self._source)
        self.logger.warning("Channel %s closed by broker: %s", self.channel_number, reason)
        try:
            self.connection.send_method(self.channel_number, spec.Channel.CloseOk())
        except (OSError, ConnectionNotOpenError) as exc:
            self.logger.debug("Could not acknowledge channel close: %s", exc)
        self._complete_close(reason, forget=True)

    # Internals

    @property
    def _source(self) -> str:
        return f"channel {self.channel_number}"

    def _ensure_open(self) -> None:
        connection_reason = self.connection.close_reason
        if connection_reason is not None:
            raise ConnectionNotOpenError("Connection is closed", connection_reason)
        if self._state is not ChannelState.OPEN:
            raise ChannelClosedError(
                f"Channel {self.channel_number} is {self._state.value}", self._close_reason
            )

    def _call(
        self,
        method: Any,
        replies: Sequence[Type[Any]],
        timeout: Optional[float] = None,
        on_reply: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        if self.connection.in_reader_thread:
            raise ReaderThreadError(
                f"Cannot wait for {method.NAME} on channel {self.channel_number} from the reader thread"
            )
        with self._rpc_lock:
            continuation = RpcContinuation(tuple(replies), on_reply)
            with self._lock:
                if self._state is ChannelState.CLOSED:
                    raise ChannelClosedError(f"Channel {self.channel_number} is closed", self._close_reason)
                self._continuations.append(continuation)
            try:
                self.connection.send_method(self.channel_number, method)
            except Exception:
                with self._lock:
                    if continuation in self._continuations:
                        self._continuations.remove(continuation)
                raise
            if timeout is None:
                timeout = self.connection.continuation_timeout
            return continuation.wait(timeout)

    def _complete_close(self, reason: ShutdownReason, forget: bool) -> None:
        tags = self.consumer_tags
        error = ChannelClosedError(f"Channel {self.channel_number} closed", reason)
        if not self._finish(reason, error):
            return
        registry = self.connection.topology
        if forget and registry is not None:
            for tag in tags:
                registry.delete_consumer(tag)
        self.connection.release_channel(self, forget=forget)

    def _finish(self, reason: ShutdownReason, error: BaseException) -> bool:
        with self._lock:
            if self._state is ChannelState.CLOSED:
                return False
            self._state = ChannelState.CLOSED
            self._close_reason = reason
            pending, self._continuations = self._continuations, []
            self._consumers.clear()
            self._content = None
        for continuation in pending:
            continuation.fail(error)
        self.logger.debug("Channel %s closed: %s", self.channel_number, reason)
        return True

    def _forget_consumer(self, consumer_tag: str) -> None:
        with self._lock:
            self._consumers.pop(consumer_tag, None)
        if self.connection.topology is not None:
            self.connection.topology.delete_consumer(consumer_tag)
