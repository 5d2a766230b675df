"""Tests for the TCP transport."""

import socket
from unittest.mock import Mock, patch

import pytest

from amqp_connection.config import Endpoint
from amqp_connection.transport import TcpTransport


@pytest.fixture
def mock_socket():
    with patch("amqp_connection.transport.tcp_transport.socket.create_connection") as create:
        sock = Mock()
        create.return_value = sock
        yield create, sock


def test_connect_disables_nagle(mock_socket):
    create, sock = mock_socket
    transport = TcpTransport()

    transport.connect(Endpoint("rabbit", 5673), timeout=3.0)

    create.assert_called_once_with(("rabbit", 5673), timeout=3.0)
    sock.setsockopt.assert_called_once_with(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    sock.settimeout.assert_called_once_with(None)


def test_read_and_write_use_socket(mock_socket):
    _, sock = mock_socket
    sock.recv.return_value = b"data"
    transport = TcpTransport()
    transport.connect(Endpoint())

    assert transport.read(1024) == b"data"
    transport.write(b"payload")

    sock.recv.assert_called_once_with(1024)
    sock.sendall.assert_called_once_with(b"payload")


def test_io_before_connect_raises_os_error():
    transport = TcpTransport()

    with pytest.raises(OSError):
        transport.read(10)
    with pytest.raises(OSError):
        transport.write(b"x")


def test_close_is_idempotent_and_tolerates_shutdown_errors(mock_socket):
    _, sock = mock_socket
    sock.shutdown.side_effect = OSError("not connected")
    transport = TcpTransport()
    transport.connect(Endpoint())

    transport.close()
    transport.close()

    sock.close.assert_called_once_with()
