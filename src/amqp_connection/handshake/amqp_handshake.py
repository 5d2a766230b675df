"""AMQP 0-9-1 connection negotiation."""

from __future__ import annotations

import logging
import platform
from typing import TYPE_CHECKING, Any, Dict, Optional, Type

from pika import frame as pika_frame
from pika import spec

from amqp_connection import __version__
from amqp_connection.contracts import IHandshake, NegotiatedParameters
from amqp_connection.exceptions import AuthenticationFailureError, HandshakeError

if TYPE_CHECKING:
    from amqp_connection.config import ConnectionConfig
    from amqp_connection.connection.frame_stream import FrameStream

PRODUCT = "amqp-connection"


def negotiate_limit(client_value: Optional[int], server_value: Optional[int]) -> int:
    """Zero on either side means "no limit", so the other side wins; otherwise the smaller."""
    client_value = client_value or 0
    server_value = server_value or 0
    if client_value == 0 or server_value == 0:
        return max(client_value, server_value)
    return min(client_value, server_value)


class AmqpHandshake(IHandshake):
    """Protocol header, SASL response, tuning and ``Connection.Open``."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def negotiate(self, stream: FrameStream, config: ConnectionConfig) -> NegotiatedParameters:
        stream.write_frame(pika_frame.ProtocolHeader())

        start = self._expect(stream, spec.Connection.Start, "start")
        mechanism, response = config.credentials.response_for(start)
        if mechanism is None:
            raise AuthenticationFailureError(
                f"No supported authentication mechanism in {start.mechanisms!r}"
            )
        client_properties = self.client_properties(config)
        stream.write_frame(
            pika_frame.Method(
                0, spec.Connection.StartOk(client_properties, mechanism, response, config.locale)
            )
        )

        tune = self._expect(stream, spec.Connection.Tune, "tune")
        channel_max = negotiate_limit(config.requested_channel_max, tune.channel_max)
        frame_max = negotiate_limit(config.requested_frame_max, tune.frame_max)
        if config.requested_heartbeat is None:
            heartbeat = tune.heartbeat
        else:
            heartbeat = config.requested_heartbeat
        stream.write_frame(pika_frame.Method(0, spec.Connection.TuneOk(channel_max, frame_max, heartbeat)))

        stream.write_frame(pika_frame.Method(0, spec.Connection.Open(config.virtual_host)))
        open_ok = self._expect(stream, spec.Connection.OpenOk, "open")

        self.logger.info(
            "Negotiated channel_max=%s frame_max=%s heartbeat=%s mechanism=%s",
            channel_max,
            frame_max,
            heartbeat,
            mechanism,
        )
        known_hosts = open_ok.known_hosts or ""
        return NegotiatedParameters(
            channel_max=channel_max,
            frame_max=frame_max,
            heartbeat=heartbeat,
            mechanism=str(mechanism),
            server_properties=dict(start.server_properties or {}),
            client_properties=client_properties,
            known_hosts=[h for h in known_hosts.split(",") if h],
        )

    def client_properties(self, config: ConnectionConfig) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "product": PRODUCT,
            "version": __version__,
            "platform": f"Python {platform.python_version()}",
            "information": "AMQP 0-9-1 connection core",
            "capabilities": {
                "authentication_failure_close": True,
                "basic.nack": True,
                "connection.blocked": True,
                "consumer_cancel_notify": True,
                "publisher_confirms": True,
            },
        }
        if config.client_provided_name:
            properties["connection_name"] = config.client_provided_name
        properties.update(config.client_properties)
        return properties

    def _expect(self, stream: FrameStream, method_class: Type[Any], stage: str) -> Any:
        while True:
            frame = stream.read_frame()
            if isinstance(frame, pika_frame.Heartbeat):
                continue
            if isinstance(frame, pika_frame.ProtocolHeader):
                raise HandshakeError(
                    f"Broker does not support AMQP 0-9-1 (offered {frame.major}-{frame.minor}-{frame.revision})"
                )
            if not isinstance(frame, pika_frame.Method) or frame.channel_number != 0:
                raise HandshakeError(f"Unexpected frame during {stage}: {frame!r}")
            method = frame.method
            if isinstance(method, method_class):
                return method
            if isinstance(method, spec.Connection.Close):
                self._acknowledge_close(stream)
                message = f"Broker closed the connection during {stage}: {method.reply_code} {method.reply_text}"
                if method.reply_code == spec.ACCESS_REFUSED:
                    raise AuthenticationFailureError(
                        message, reply_code=method.reply_code, reply_text=method.reply_text
                    )
                raise HandshakeError(message, reply_code=method.reply_code, reply_text=method.reply_text)
            if isinstance(method, spec.Connection.Secure):
                raise AuthenticationFailureError("SASL challenge/response is not supported")
            raise HandshakeError(f"Expected {method_class.NAME} during {stage}, got {method.NAME}")

    def _acknowledge_close(self, stream: FrameStream) -> None:
        try:
            stream.write_frame(pika_frame.Method(0, spec.Connection.CloseOk()))
        except OSError as exc:
            self.logger.debug("Could not acknowledge broker close: %s", exc)
