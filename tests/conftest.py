"""
Pytest configuration and fixtures for table sync tests.
Provides in-memory SQLite databases and isolated metrics registries.
"""

import sqlite3
from collections.abc import Iterator

import pytest
from prometheus_client import CollectorRegistry

from tablesync.utils.metrics import SyncMetrics


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture
def source_conn() -> Iterator[sqlite3.Connection]:
    """In-memory SQLite database used as sync source."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def dest_conn() -> Iterator[sqlite3.Connection]:
    """In-memory SQLite database used as sync destination."""
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def registry() -> CollectorRegistry:
    """Private Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def sync_metrics(registry: CollectorRegistry) -> SyncMetrics:
    """SyncMetrics bound to a private registry."""
    return SyncMetrics(registry=registry)
