"""
Settings and configuration management for the ledger indexer.
Loads configuration from YAML files and environment variables.
"""

import os
import yaml
import logging
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _optional_int(value: Any) -> Optional[int]:
    """Coerce an optional YAML or environment value to int."""
    if value is None or value == '':
        return None
    return int(value)


@dataclass
class DatabaseConfig:
    """Database configuration settings."""
    database_url: Optional[str] = None
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout_seconds: float = 30
    pool_recycle_hours: int = 1
    connection_max_attempts: Optional[int] = None  # None retries forever
    connection_retry_wait_seconds: float = 0


@dataclass
class IndexerConfig:
    """Tailer configuration settings."""
    node_url: str = "http://localhost:8080/v1"
    processors: List[str] = field(default_factory=lambda: ["default"])
    starting_version: int = 0
    batch_size: int = 500
    retry_batch_size: int = 100
    retry_budget: int = 1000
    idle_backoff_seconds: float = 1.0
    check_chain_id: bool = True
    create_tables: bool = True


@dataclass
class FetcherConfig:
    """Upstream REST fetcher configuration."""
    timeout_seconds: float = 30
    max_retries: Optional[int] = None  # None retries forever
    backoff_multiplier: float = 1
    backoff_max_seconds: float = 10


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"


class Settings:
    """Main settings class that loads and manages all configuration."""
    
    def __init__(self, config_path: Optional[str] = None):
        """Initialize settings.
        
        Args:
            config_path: Path to YAML configuration file. If None, uses default path.
        """
        self.config_path = config_path or self._get_default_config_path()
        self.config_data: Dict[str, Any] = {}
        self.load_config()
        
        self.database = self._load_database_config()
        self.indexer = self._load_indexer_config()
        self.fetcher = self._load_fetcher_config()
        self.logging = self._load_logging_config()
    
    def _get_default_config_path(self) -> str:
        """Get default configuration file path."""
        possible_paths = [
            os.getenv("INDEXER_CONFIG_PATH", ""),
            "config/indexer_config.yaml",
            "/etc/ledger-indexer/indexer_config.yaml",
            os.path.join(os.path.dirname(__file__), "..", "..", "config", "indexer_config.yaml"),
        ]
        
        for path in possible_paths:
            if path and os.path.exists(path):
                return path
        
        return possible_paths[1]
    
    def load_config(self):
        """Load configuration from YAML file."""
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, 'r') as file:
                    self.config_data = yaml.safe_load(file) or {}
                logger.debug(f"Loaded configuration from {self.config_path}")
            else:
                logger.warning(f"Configuration file not found at {self.config_path}, using defaults")
                self.config_data = {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load configuration from {self.config_path}: {e}")
            self.config_data = {}
    
    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.
        
        Args:
            key: Configuration key (supports dot notation like 'database.pool_size')
            default: Default value if key not found
            
        Returns:
            Configuration value or default
        """
        # Support environment variable override
        env_key = key.upper().replace('.', '_')
        env_value = os.getenv(env_key)
        if env_value is not None:
            if isinstance(default, bool):
                return env_value.lower() in ('true', '1', 'yes', 'on')
            elif isinstance(default, int):
                try:
                    return int(env_value)
                except ValueError:
                    pass
            elif isinstance(default, float):
                try:
                    return float(env_value)
                except ValueError:
                    pass
            elif isinstance(default, list):
                return [item.strip() for item in env_value.split(',') if item.strip()]
            return env_value
        
        # Navigate nested dictionary using dot notation
        keys = key.split('.')
        value = self.config_data
        
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        
        return value
    
    def _load_database_config(self) -> DatabaseConfig:
        """Load database configuration."""
        defaults = DatabaseConfig()
        return DatabaseConfig(
            database_url=os.getenv('INDEXER_DATABASE_URL') or self.get('database.database_url'),
            pool_size=self.get('database.pool_size', defaults.pool_size),
            max_overflow=self.get('database.max_overflow', defaults.max_overflow),
            pool_timeout_seconds=self.get('database.pool_timeout_seconds', float(defaults.pool_timeout_seconds)),
            pool_recycle_hours=self.get('database.pool_recycle_hours', defaults.pool_recycle_hours),
            connection_max_attempts=_optional_int(self.get('database.connection_max_attempts')),
            connection_retry_wait_seconds=self.get(
                'database.connection_retry_wait_seconds', float(defaults.connection_retry_wait_seconds)
            ),
        )
    
    def _load_indexer_config(self) -> IndexerConfig:
        """Load tailer configuration."""
        defaults = IndexerConfig()
        return IndexerConfig(
            node_url=os.getenv('INDEXER_NODE_URL') or self.get('indexer.node_url', defaults.node_url),
            processors=self.get('indexer.processors', defaults.processors),
            starting_version=self.get('indexer.starting_version', defaults.starting_version),
            batch_size=self.get('indexer.batch_size', defaults.batch_size),
            retry_batch_size=self.get('indexer.retry_batch_size', defaults.retry_batch_size),
            retry_budget=self.get('indexer.retry_budget', defaults.retry_budget),
            idle_backoff_seconds=self.get('indexer.idle_backoff_seconds', defaults.idle_backoff_seconds),
            check_chain_id=self.get('indexer.check_chain_id', defaults.check_chain_id),
            create_tables=self.get('indexer.create_tables', defaults.create_tables),
        )
    
    def _load_fetcher_config(self) -> FetcherConfig:
        """Load fetcher configuration."""
        defaults = FetcherConfig()
        return FetcherConfig(
            timeout_seconds=self.get('fetcher.timeout_seconds', float(defaults.timeout_seconds)),
            max_retries=_optional_int(self.get('fetcher.max_retries')),
            backoff_multiplier=self.get('fetcher.backoff_multiplier', float(defaults.backoff_multiplier)),
            backoff_max_seconds=self.get('fetcher.backoff_max_seconds', float(defaults.backoff_max_seconds)),
        )
    
    def _load_logging_config(self) -> LoggingConfig:
        return LoggingConfig(level=self.get('logging.level', LoggingConfig().level))
    
    def get_database_url(self) -> str:
        """Get database URL from configuration or environment variables."""
        if self.database.database_url:
            return self.database.database_url
        
        user = os.getenv('POSTGRES_USER', 'indexer')
        password = os.getenv('POSTGRES_PASSWORD', 'indexer_password')
        host = os.getenv('POSTGRES_HOST', 'localhost')
        port = os.getenv('POSTGRES_PORT', '5432')
        database = os.getenv('POSTGRES_DB', 'ledger_index')
        
        return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance.
    
    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """Reload settings from configuration file."""
    global _settings
    _settings = Settings(config_path)
    logger.info("Settings reloaded")
    return _settings
