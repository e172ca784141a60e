"""
Shared pytest configuration.

Fixtures for deterministic time and in-memory storage used across unit and
integration tests.
"""

import os

import pytest

# Set test environment variables before importing fincalc modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "console"
os.environ["STORAGE_BACKEND"] = "memory"

from fincalc.core.clock import FakeClock
from fincalc.infrastructure.storage import InMemoryKeyValueStore


@pytest.fixture
def clock():
    """Manually advanced clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def store():
    """Fresh in-memory key-value store."""
    return InMemoryKeyValueStore()
