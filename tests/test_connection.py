"""Tests for pooled connection acquisition."""

import pytest
from sqlalchemy import text

from ledger_indexer.config import settings as settings_module
from ledger_indexer.config.settings import DatabaseConfig, Settings
from ledger_indexer.database import connection as connection_module
from ledger_indexer.database.connection import ConnectionRetryPolicy, DatabaseConnection, get_database_connection
from ledger_indexer.database.init_tables import init_database
from ledger_indexer.indexer.exceptions import ConnectionAcquireError


@pytest.fixture
def tiny_pool(tmp_path, metrics):
    connection = DatabaseConnection(
        f"sqlite:///{tmp_path / 'pool.db'}",
        DatabaseConfig(pool_size=1, max_overflow=0, pool_timeout_seconds=0.1),
        ConnectionRetryPolicy(max_attempts=2, wait_seconds=0),
    )
    yield connection
    connection.dispose()


def test_exhausted_pool_raises_after_retries(tiny_pool, metrics):
    held = tiny_pool.get_connection()
    try:
        with pytest.raises(ConnectionAcquireError):
            tiny_pool.get_connection()
    finally:
        held.close()

    assert metrics.got_connection.value() == 1
    assert metrics.unable_to_get_connection.value() == 2


def test_connection_returns_to_pool(tiny_pool, metrics):
    for _ in range(3):
        with tiny_pool.get_session() as session:
            assert session.execute(text("SELECT 1")).scalar() == 1

    assert metrics.got_connection.value() == 3
    assert tiny_pool.get_pool_status()["checked_out"] == 0


def test_retry_policy_from_config():
    policy = ConnectionRetryPolicy.from_config(
        DatabaseConfig(connection_max_attempts=3, connection_retry_wait_seconds=0.5)
    )
    assert (policy.max_attempts, policy.wait_seconds) == (3, 0.5)
    assert ConnectionRetryPolicy.from_config(DatabaseConfig()).max_attempts is None


def test_session_rolls_back_on_error(db):
    with pytest.raises(ZeroDivisionError):
        with db.get_session() as session:
            session.execute(text("SELECT 1"))
            1 / 0
    assert db.get_pool_status()["checked_out"] == 0


def test_init_database_creates_tables(tmp_path, db_config, metrics):
    connection = DatabaseConnection(f"sqlite:///{tmp_path / 'fresh.db'}", db_config)
    try:
        assert init_database(connection) == {"status": "success", "message": "All tables created"}
        with connection.get_session() as session:
            tables = session.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'")).scalars().all()
    finally:
        connection.dispose()

    assert {"transactions", "user_transactions", "block_metadata_transactions", "events",
            "write_set_changes", "processor_statuses", "ledger_infos"} <= set(tables)


def test_init_database_defaults_to_the_configured_connection(tmp_path, monkeypatch, metrics):
    monkeypatch.setenv("INDEXER_DATABASE_URL", f"sqlite:///{tmp_path / 'configured.db'}")
    monkeypatch.setattr(settings_module, "_settings", Settings(str(tmp_path / "missing.yaml")))
    monkeypatch.setattr(connection_module, "_db_connection", None)

    try:
        assert init_database()["status"] == "success"
        assert get_database_connection() is get_database_connection()
        assert get_database_connection().database_url.endswith("configured.db")
    finally:
        get_database_connection().dispose()
