"""Tests for YAML and environment configuration."""

import pytest

from ledger_indexer.config.settings import Settings, reload_settings, get_settings

CONFIG = """
database:
  database_url: sqlite:///indexer.db
  pool_size: 3
  connection_max_attempts: 4

indexer:
  node_url: http://node.test/v1
  processors:
    - default
  batch_size: 250

fetcher:
  max_retries:
  backoff_max_seconds: 2
"""


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    for var in ("INDEXER_DATABASE_URL", "INDEXER_NODE_URL", "INDEXER_BATCH_SIZE", "INDEXER_PROCESSORS",
                "DATABASE_POOL_SIZE", "FETCHER_MAX_RETRIES"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "indexer_config.yaml"
    path.write_text(CONFIG)
    return str(path)


def test_loads_yaml(config_path):
    settings = Settings(config_path)

    assert settings.get_database_url() == "sqlite:///indexer.db"
    assert settings.database.pool_size == 3
    assert settings.database.connection_max_attempts == 4
    assert settings.indexer.node_url == "http://node.test/v1"
    assert settings.indexer.batch_size == 250
    assert settings.indexer.retry_batch_size == 100
    assert settings.fetcher.max_retries is None
    assert settings.fetcher.backoff_max_seconds == 2
    assert settings.logging.level == "INFO"


def test_environment_overrides(config_path, monkeypatch):
    monkeypatch.setenv("INDEXER_BATCH_SIZE", "42")
    monkeypatch.setenv("INDEXER_PROCESSORS", "default, audit")
    monkeypatch.setenv("INDEXER_NODE_URL", "http://other.test/v1")
    monkeypatch.setenv("INDEXER_DATABASE_URL", "sqlite:///other.db")
    monkeypatch.setenv("FETCHER_MAX_RETRIES", "5")

    settings = Settings(config_path)

    assert settings.indexer.batch_size == 42
    assert settings.indexer.processors == ["default", "audit"]
    assert settings.indexer.node_url == "http://other.test/v1"
    assert settings.get_database_url() == "sqlite:///other.db"
    assert settings.fetcher.max_retries == 5


def test_missing_file_uses_defaults(tmp_path, monkeypatch):
    for var in ("INDEXER_DATABASE_URL", "POSTGRES_USER", "POSTGRES_HOST", "POSTGRES_DB"):
        monkeypatch.delenv(var, raising=False)

    settings = Settings(str(tmp_path / "missing.yaml"))

    assert settings.indexer.batch_size == 500
    assert settings.indexer.processors == ["default"]
    assert settings.get_database_url().startswith("postgresql+psycopg2://indexer:")


def test_reload_replaces_global(config_path):
    settings = reload_settings(config_path)
    assert get_settings() is settings
