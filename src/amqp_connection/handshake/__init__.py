"""Default connection negotiation."""

from .amqp_handshake import PRODUCT, AmqpHandshake, negotiate_limit

__all__ = ["AmqpHandshake", "PRODUCT", "negotiate_limit"]
