"""The connection state machine."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from pika import frame as pika_frame
from pika import spec

from amqp_connection.channel import Channel, ChannelMultiplexer, RpcContinuation
from amqp_connection.config import ConnectionConfig, Endpoint
from amqp_connection.contracts import (
    IConnection,
    IFrameCodec,
    IHandshake,
    ITopologyRegistry,
    ITransport,
    NegotiatedParameters,
)
from amqp_connection.events import CallbackExceptionEvent, EventDispatcher, EventKind, Listener
from amqp_connection.exceptions import (
    ConnectionNotOpenError,
    ConnectionOpenError,
    FrameDecodeError,
    HandshakeError,
    MissedHeartbeatError,
    ProtocolViolationError,
    ReaderThreadError,
    TransportError,
    UnsupportedOperationError,
)
from amqp_connection.flow_control import FlowControlGate
from amqp_connection.heartbeat import HeartbeatMonitor
from amqp_connection.recovery.record import RecoveryRecord
from amqp_connection.shutdown import (
    FORCED_CLOSE_DESCRIPTION,
    SOCKET_ERROR_CLOSE_CODE,
    ShutdownProtocol,
    ShutdownReason,
    ShutdownReportEntry,
)

from .delivery_worker import DeliveryWorker, Work
from .frame_stream import FrameStream
from .state import ConnectionState

if TYPE_CHECKING:
    from amqp_connection.recovery.engine import RecoveryEngine

REFRESHABLE_MECHANISMS = frozenset({"PLAIN", "AMQPLAIN"})


class Connection(IConnection):
    """One AMQP connection: ``CONNECTING -> OPEN -> CLOSING -> CLOSED``.

    The reader thread started by :meth:`start` is the only code that routes
    inbound frames. Application threads create channels, publish and close;
    the heartbeat thread and the close timer may also drive the connection
    towards ``CLOSED``. Whichever trigger reaches the shutdown protocol first
    wins and the others become no-ops.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        endpoint: Endpoint,
        *,
        transport: ITransport,
        codec: IFrameCodec,
        handshake: IHandshake,
        topology: Optional[ITopologyRegistry] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.config = config
        self.topology = topology
        self.recovery_record: Optional[RecoveryRecord] = None
        self.recovery: Optional[RecoveryEngine] = None
        self._endpoint = endpoint
        self._handshake = handshake
        self._stream = FrameStream(transport, codec)
        self._lock = threading.RLock()
        self._state = ConnectionState.CONNECTING
        self._close_reason: Optional[ShutdownReason] = None
        self._negotiated: Optional[NegotiatedParameters] = None
        self._dispatcher = EventDispatcher(logger=self.logger)
        self._gate = FlowControlGate(self._dispatcher, logger=self.logger)
        self._shutdown = ShutdownProtocol(logger=self.logger)
        self._multiplexer = ChannelMultiplexer(config.requested_channel_max, self._lock, logger=self.logger)
        self._heartbeat: Optional[HeartbeatMonitor] = None
        self._reader: Optional[threading.Thread] = None
        self._deliveries = DeliveryWorker(name=f"amqp-delivery-{endpoint}", logger=self.logger)
        self._rpc_lock = threading.Lock()
        self._pending_rpc: Optional[RpcContinuation] = None
        self._transport_released = False
        self._handshake_timed_out = False

    def __repr__(self) -> str:
        return f"<Connection {self.client_provided_name or ''} {self._endpoint} state={self._state.value}>"

    # Properties

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def close_reason(self) -> Optional[ShutdownReason]:
        return self._close_reason

    @property
    def shutdown_report(self) -> List[ShutdownReportEntry]:
        return self._shutdown.report

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def channel_max(self) -> int:
        return self._negotiated.channel_max if self._negotiated else 0

    @property
    def frame_max(self) -> int:
        return self._negotiated.frame_max if self._negotiated else 0

    @property
    def heartbeat(self) -> int:
        return self._negotiated.heartbeat if self._negotiated else 0

    @property
    def client_properties(self) -> Dict[str, Any]:
        return dict(self._negotiated.client_properties) if self._negotiated else {}

    @property
    def server_properties(self) -> Dict[str, Any]:
        return dict(self._negotiated.server_properties) if self._negotiated else {}

    @property
    def known_hosts(self) -> List[str]:
        return list(self._negotiated.known_hosts) if self._negotiated else []

    @property
    def client_provided_name(self) -> Optional[str]:
        return self.config.client_provided_name

    @property
    def continuation_timeout(self) -> float:
        return self.config.continuation_timeout

    @property
    def blocked(self) -> bool:
        return self._gate.blocked

    @property
    def multiplexer(self) -> ChannelMultiplexer:
        return self._multiplexer

    @property
    def in_reader_thread(self) -> bool:
        """True on the thread that routes inbound frames, where event listeners run."""
        return self._reader is not None and self._reader is threading.current_thread()

    # Startup

    def start(self) -> Connection:
        """Connect and negotiate; on any failure the connection ends up CLOSED and the error is raised."""
        with self._lock:
            if self._state is not ConnectionState.CONNECTING:
                raise ConnectionNotOpenError("Connection has already been started", self._close_reason)

        try:
            self._stream.transport.connect(self._endpoint, timeout=self.config.handshake_timeout)
        except OSError as exc:
            self._fail_start(exc)
            raise ConnectionOpenError(f"Could not connect to {self._endpoint}: {exc}") from exc

        timer = threading.Timer(self.config.handshake_timeout, self._on_handshake_timeout)
        timer.daemon = True
        timer.start()
        try:
            negotiated = self._handshake.negotiate(self._stream, self.config)
        except HandshakeError as exc:
            self._fail_start(exc)
            raise
        except Exception as exc:
            self._fail_start(exc)
            if self._handshake_timed_out:
                raise HandshakeError(
                    f"Handshake with {self._endpoint} timed out after {self.config.handshake_timeout}s"
                ) from exc
            raise HandshakeError(f"Handshake with {self._endpoint} failed: {exc}") from exc
        finally:
            timer.cancel()

        self._negotiated = negotiated
        self._multiplexer.channel_max = negotiated.channel_max or self._multiplexer.channel_max
        self._heartbeat = HeartbeatMonitor(
            negotiated.heartbeat,
            self._send_heartbeat,
            self._on_missed_heartbeat,
            missed_heartbeats=self.config.missed_heartbeats,
            name=f"amqp-heartbeat-{self._endpoint}",
            logger=self.logger,
        )
        with self._lock:
            self._state = ConnectionState.OPEN
        self._reader = threading.Thread(target=self._read_loop, name=f"amqp-reader-{self._endpoint}", daemon=True)
        self._deliveries.start()
        self._reader.start()
        self._heartbeat.start()
        self.logger.info("Connection to %s open", self._endpoint)
        return self

    def _on_handshake_timeout(self) -> None:
        self._handshake_timed_out = True
        self.logger.error("Handshake with %s timed out", self._endpoint)
        self._stream.close()

    def _fail_start(self, exc: BaseException) -> None:
        reason = ShutdownReason.library(SOCKET_ERROR_CLOSE_CODE, f"Connection setup failed: {exc}", cause=exc)
        self._shutdown.begin(reason)
        self._release_transport(reason)
        self.logger.error("Could not open connection to %s: %s", self._endpoint, exc)

    # Application API

    def channel(self, channel_number: Optional[int] = None) -> Channel:
        self._ensure_not_reader("open a channel")
        with self._lock:
            self._ensure_open()
            channel = self._multiplexer.allocate(self._make_channel, channel_number)
        try:
            channel.open()
        except Exception:
            self.logger.warning("Channel %s did not open", channel.channel_number)
            channel.close_nowait(reply_text="Channel open abandoned")
            raise
        if self.recovery_record is not None:
            self.recovery_record.channel_opened(channel.channel_number)
        return channel

    def update_secret(self, new_secret: str, reason: str) -> None:
        self._ensure_open()
        self._ensure_not_reader("update the secret")
        mechanism = self._negotiated.mechanism if self._negotiated else ""
        if mechanism.upper() not in REFRESHABLE_MECHANISMS:
            raise UnsupportedOperationError(f"Mechanism {mechanism} does not support secret updates")
        with self._rpc_lock:
            continuation = RpcContinuation((spec.Connection.UpdateSecretOk,))
            self._pending_rpc = continuation
            try:
                self.send_method(0, spec.Connection.UpdateSecret(new_secret=new_secret, reason=reason))
                continuation.wait(self.config.continuation_timeout)
            finally:
                if self._pending_rpc is continuation and continuation.done:
                    self._pending_rpc = None
        self.logger.info("Connection secret updated: %s", reason)

    def close(
        self,
        reply_code: int = spec.REPLY_SUCCESS,
        reply_text: str = "Goodbye",
        timeout: Optional[float] = None,
    ) -> None:
        self._close(ShutdownReason.application(reply_code, reply_text), timeout, abort=False)

    def abort(
        self,
        reply_code: int = spec.REPLY_SUCCESS,
        reply_text: str = "Connection close forced",
        timeout: Optional[float] = None,
    ) -> None:
        self._close(ShutdownReason.application(reply_code, reply_text), timeout, abort=True)

    def add_listener(self, kind: EventKind, listener: Listener) -> None:
        self._dispatcher.add_listener(kind, listener)

    def remove_listener(self, kind: EventKind, listener: Listener) -> None:
        self._dispatcher.remove_listener(kind, listener)

    def handle_connection_blocked(self, reason: str) -> None:
        self._gate.block(reason)

    def handle_connection_unblocked(self) -> None:
        self._gate.unblock()

    # Used by channels

    def send_method(self, channel_number: int, method: Any) -> None:
        """Write a method frame; it waits behind publishes flow control holds for the same channel."""
        frames = [pika_frame.Method(channel_number, method)]
        # The broker discards everything on a channel it closed until CloseOk arrives.
        if channel_number != 0 and not isinstance(method, spec.Channel.CloseOk):
            self._ensure_open()
            owner = self._multiplexer.get(channel_number)
            if owner is not None and self._gate.defer_if_held(owner, lambda: self._write_deferred(owner, frames)):
                return
        self._write(frames)

    def send_content(self, channel_number: int, method: Any, properties: Any, body: bytes) -> None:
        """Write a content-bearing method, split into body frames, through the flow-control gate."""
        self._ensure_open()
        frames: List[Any] = [
            pika_frame.Method(channel_number, method),
            pika_frame.Header(channel_number, len(body), properties),
        ]
        max_body = self.frame_max - spec.FRAME_HEADER_SIZE - spec.FRAME_END_SIZE
        if max_body <= 0:
            max_body = len(body) or 1
        for offset in range(0, len(body), max_body):
            frames.append(pika_frame.Body(channel_number, body[offset : offset + max_body]))
        owner = self._multiplexer.get(channel_number)
        if not self._gate.submit(lambda: self._write_deferred(owner, frames), key=owner):
            self.logger.debug("Publish on channel %s held back by flow control", channel_number)

    def submit_delivery(self, work: Work) -> None:
        """Run a consumer callback on the delivery thread."""
        self._deliveries.submit(work)

    def release_channel(self, channel: Channel, forget: bool) -> None:
        self._multiplexer.release(channel)
        if forget and self.recovery_record is not None:
            self.recovery_record.channel_closed(channel.channel_number)

    def report_callback_exception(self, exc: BaseException, detail: Dict[str, Any]) -> None:
        self._dispatcher.dispatch(EventKind.CALLBACK_EXCEPTION, CallbackExceptionEvent(exc, None, detail))

    # Writing

    def _ensure_open(self) -> None:
        if self._state is not ConnectionState.OPEN:
            raise ConnectionNotOpenError(
                f"Connection is {self._state.value}", self._close_reason or self._shutdown.reason
            )

    def _ensure_not_reader(self, operation: str) -> None:
        if self.in_reader_thread:
            raise ReaderThreadError(f"Cannot {operation} from an event listener on the reader thread")

    def _write(self, frames: Sequence[Any]) -> None:
        self._ensure_open()
        try:
            self._stream.write_frames(frames)
        except OSError as exc:
            self._on_transport_failure(exc)
            raise ConnectionNotOpenError("Connection lost while writing", self._shutdown.reason) from exc
        if self._heartbeat is not None:
            self._heartbeat.frame_sent()

    def _write_deferred(self, owner: Optional[Channel], frames: Sequence[Any]) -> None:
        """Write frames held back by flow control, unless their channel gave up its number meanwhile."""
        number = frames[0].channel_number
        if owner is None or self._multiplexer.get(number) is not owner:
            self.logger.warning("Dropped held-back write for channel %s: channel was released", number)
            return
        try:
            self._write(frames)
        except ConnectionNotOpenError as exc:
            self.logger.warning("Dropped held-back write: %s", exc)

    def _send_heartbeat(self) -> None:
        try:
            self._stream.write_frame(pika_frame.Heartbeat())
        except OSError as exc:
            self._on_transport_failure(exc)

    def _make_channel(self, channel_number: int) -> Channel:
        return Channel(self, channel_number, logger=self.logger)

    # Reading

    def _read_loop(self) -> None:
        while not self._transport_released:
            try:
                frame = self._stream.read_frame()
            except FrameDecodeError as exc:
                self._on_protocol_violation(ProtocolViolationError(str(exc), spec.FRAME_ERROR), await_close_ok=False)
                self._release_transport(None)
                return
            except (OSError, TransportError) as exc:
                self._on_transport_failure(exc)
                return
            if self._heartbeat is not None:
                self._heartbeat.frame_received()
            try:
                self._dispatch_frame(frame)
            except ProtocolViolationError as exc:
                self._on_protocol_violation(exc)
            except Exception as exc:
                self.logger.error("Error while dispatching %r", frame, exc_info=True)
                self._on_protocol_violation(ProtocolViolationError(f"Internal error: {exc}", spec.INTERNAL_ERROR))
        self.logger.debug("Reader for %s stopped", self._endpoint)

    def _dispatch_frame(self, frame: Any) -> None:
        if isinstance(frame, pika_frame.Heartbeat):
            return
        if frame.channel_number == 0:
            self._handle_connection_frame(frame)
        elif self._shutdown.started:
            self.logger.debug("Discarding frame for channel %s while closing", frame.channel_number)
        else:
            self._multiplexer.route(frame)

    def _handle_connection_frame(self, frame: Any) -> None:
        if not isinstance(frame, pika_frame.Method):
            raise ProtocolViolationError(f"Unexpected frame on channel 0: {frame!r}", spec.UNEXPECTED_FRAME)
        method = frame.method
        if isinstance(method, spec.Connection.Close):
            self._on_peer_close(method)
        elif isinstance(method, spec.Connection.CloseOk):
            if self._shutdown.started:
                self._release_transport(self._shutdown.reason)
            else:
                self.logger.warning("Ignoring unsolicited Connection.CloseOk")
        elif isinstance(method, spec.Connection.Blocked):
            self.handle_connection_blocked(method.reason)
        elif isinstance(method, spec.Connection.Unblocked):
            self.handle_connection_unblocked()
        elif isinstance(method, spec.Connection.UpdateSecretOk) and self._pending_rpc is not None:
            continuation, self._pending_rpc = self._pending_rpc, None
            if continuation.valid:
                continuation.resolve(method)
        else:
            raise ProtocolViolationError(f"Unexpected {method.NAME} on channel 0", spec.UNEXPECTED_FRAME)

    # Shutdown

    def _close(self, reason: ShutdownReason, timeout: Optional[float], abort: bool) -> None:
        with self._lock:
            if self._state is ConnectionState.CONNECTING:
                if self._shutdown.begin(reason):
                    self._release_transport(reason)
                return
        if not self._shutdown.begin(reason):
            return
        send_error = self._begin_close_handshake(reason)
        if send_error is None and self.in_reader_thread:
            self._shutdown.schedule_force(
                timeout if timeout is not None else self.config.shutdown_timeout, self._force_release
            )
            return
        if send_error is None and not self._shutdown.wait(timeout):
            self._shutdown.record(FORCED_CLOSE_DESCRIPTION)
        self._release_transport(reason)
        if send_error is not None and not abort:
            raise TransportError(f"I/O error while closing: {send_error}") from send_error

    def _begin_close_handshake(self, reason: ShutdownReason) -> Optional[OSError]:
        """Enter CLOSING, close every channel and send ``Connection.Close``; returns the send error."""
        self._enter_closing(reason)
        close = spec.Connection.Close(reason.reply_code, reason.reply_text, reason.class_id, reason.method_id)
        try:
            self._stream.write_frame(pika_frame.Method(0, close))
        except OSError as exc:
            self._shutdown.record("Failed to send Connection.Close", exc)
            return exc
        return None

    def _enter_closing(self, reason: ShutdownReason) -> None:
        with self._lock:
            self._state = ConnectionState.CLOSING
        self._close_channels(reason)

    def _close_channels(self, reason: ShutdownReason) -> None:
        for channel, exc in self._multiplexer.close_all(reason):
            self._shutdown.record(f"Failed to close channel {channel.channel_number}", exc)
        with self._lock:
            if self._close_reason is None:
                self._close_reason = reason

    def _on_peer_close(self, method: Any) -> None:
        reason = ShutdownReason.from_close_method(method)
        self.logger.warning("Connection closed by broker: %s", reason)
        if self._shutdown.begin(reason):
            self._enter_closing(reason)
        try:
            self._stream.write_frame(pika_frame.Method(0, spec.Connection.CloseOk()))
        except OSError as exc:
            self._shutdown.record("Failed to send Connection.CloseOk", exc)
        self._release_transport(reason)

    def _on_protocol_violation(self, exc: ProtocolViolationError, await_close_ok: bool = True) -> None:
        self.logger.error("Protocol violation: %s", exc)
        reason = ShutdownReason.library(exc.reply_code, str(exc), cause=exc)
        if not self._shutdown.begin(reason):
            return
        send_error = self._begin_close_handshake(reason)
        if send_error is not None or not await_close_ok:
            self._release_transport(reason)
        else:
            self._shutdown.schedule_force(self.config.shutdown_timeout, self._force_release)

    def _on_transport_failure(self, exc: BaseException) -> None:
        if self._transport_released:
            return
        reason = ShutdownReason.library(SOCKET_ERROR_CLOSE_CODE, f"Transport failure: {exc}", cause=exc)
        if self._shutdown.begin(reason):
            self.logger.error("Connection to %s lost: %s", self._endpoint, exc)
            self._enter_closing(reason)
        else:
            self._shutdown.record("Transport failed while closing", exc)
        self._release_transport(self._shutdown.reason or reason)

    def _on_missed_heartbeat(self, silence: float) -> None:
        self._on_transport_failure(MissedHeartbeatError(f"No frames from broker for {silence:.1f}s"))

    def _force_release(self) -> None:
        if self._transport_released:
            return
        self._shutdown.record(FORCED_CLOSE_DESCRIPTION)
        self._release_transport(self._shutdown.reason)

    def _release_transport(self, reason: Optional[ShutdownReason]) -> None:
        """Tear everything down; idempotent and callable from any thread."""
        with self._lock:
            if self._transport_released:
                return
            self._transport_released = True
        reason = self._shutdown.reason or reason
        if reason is None:
            reason = ShutdownReason.library(SOCKET_ERROR_CLOSE_CODE, "Connection released")
        if self._heartbeat is not None:
            self._heartbeat.stop()
        dropped = self._gate.discard()
        if dropped:
            self._shutdown.record(f"Dropped {dropped} publish(es) held back by flow control")
        self._close_channels(reason)
        try:
            self._stream.close()
        except OSError as exc:
            self._shutdown.record("Failed to close transport", exc)
        pending, self._pending_rpc = self._pending_rpc, None
        if pending is not None:
            pending.fail(ConnectionNotOpenError("Connection closed", reason))
        with self._lock:
            self._state = ConnectionState.CLOSED
        self.logger.info("Connection to %s closed: %s", self._endpoint, reason)
        if self._negotiated is not None:
            self._dispatcher.dispatch(EventKind.SHUTDOWN, reason, latch=True)
        self._deliveries.stop()
        self._shutdown.complete()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=1.0)
        self._deliveries.join(timeout=1.0)
