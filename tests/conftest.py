"""Pytest configuration and shared fixtures for all tests."""

from typing import Any, Dict, List, Optional

import pytest

from ledger_indexer.config.settings import DatabaseConfig
from ledger_indexer.database.connection import ConnectionRetryPolicy, DatabaseConnection
from ledger_indexer.indexer.metrics import IndexerMetrics, set_metrics

from tests.factories import CHAIN_ID, FakeFetcher


@pytest.fixture
def metrics():
    """Fresh global counters for each test."""
    fresh = IndexerMetrics()
    previous = set_metrics(fresh)
    yield fresh
    set_metrics(previous)


@pytest.fixture
def db_config() -> DatabaseConfig:
    return DatabaseConfig(pool_size=5, max_overflow=5, pool_timeout_seconds=5)


@pytest.fixture
def db(tmp_path, db_config, metrics):
    """File-backed SQLite database with every table created."""
    connection = DatabaseConnection(
        f"sqlite:///{tmp_path / 'indexer.db'}",
        db_config,
        ConnectionRetryPolicy(max_attempts=2, wait_seconds=0),
    )
    connection.create_all_tables()
    yield connection
    connection.dispose()


@pytest.fixture
def make_fetcher():
    def _make(payloads: List[Dict[str, Any]], chain_id: Optional[int] = None) -> FakeFetcher:
        return FakeFetcher(payloads, chain_id if chain_id is not None else CHAIN_ID)
    return _make
