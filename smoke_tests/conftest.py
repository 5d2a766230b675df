"""Smoke tests for the amqp_connection package.

They walk ``src/amqp_connection`` itself: every library module must import
on its own, and mypy must accept the package with its co-located tests.
Run them with ``pytest -m smoke smoke_tests``.
"""

from pathlib import Path

import pytest


PACKAGE_DIR = Path(__file__).resolve().parent.parent / "src" / "amqp_connection"


@pytest.fixture(scope="session")
def package_dir() -> Path:
    if not PACKAGE_DIR.is_dir():
        pytest.fail(f"amqp_connection sources not found at {PACKAGE_DIR}")
    return PACKAGE_DIR
