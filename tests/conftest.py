"""Fixtures wiring connections to the scripted broker."""

import pytest

from amqp_connection import ConnectionConfig, ConnectionFactory

from fake_broker import FakeBroker


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def config() -> ConnectionConfig:
    return ConnectionConfig(
        continuation_timeout=2.0,
        handshake_timeout=2.0,
        shutdown_timeout=1.0,
    )


@pytest.fixture
def factory(broker: FakeBroker, config: ConnectionConfig) -> ConnectionFactory:
    return ConnectionFactory(config, dependencies=broker.dependencies())


@pytest.fixture
def connection(factory: ConnectionFactory):
    conn = factory.new_connection()
    yield conn
    conn.abort(timeout=1.0)
