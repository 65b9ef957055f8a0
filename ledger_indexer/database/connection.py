"""
Database connection management for the ledger indexer.
Provides connection pooling, retrying connection acquisition and session scopes.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.pool import QueuePool
from sqlmodel import Session, SQLModel
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_fixed,
)

from ledger_indexer.config.settings import DatabaseConfig, get_settings
from ledger_indexer.indexer.exceptions import ConnectionAcquireError
from ledger_indexer.indexer.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class ConnectionRetryPolicy:
    """How long to keep trying when the pool cannot hand out a connection.

    Each attempt already blocks for the pool timeout. `max_attempts=None`
    retries forever.
    """
    max_attempts: Optional[int] = None
    wait_seconds: float = 0

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "ConnectionRetryPolicy":
        return cls(
            max_attempts=config.connection_max_attempts,
            wait_seconds=config.connection_retry_wait_seconds,
        )


class DatabaseConnection:
    """Database connection manager with connection pooling and retry logic."""
    
    def __init__(
        self,
        database_url: Optional[str] = None,
        config: Optional[DatabaseConfig] = None,
        retry_policy: Optional[ConnectionRetryPolicy] = None,
    ):
        """Initialize database connection manager.
        
        Args:
            database_url: SQLAlchemy connection string. If None, taken from settings.
            config: Pool configuration. If None, taken from settings.
            retry_policy: Connection acquisition policy. If None, derived from config.
        """
        if config is None:
            config = get_settings().database
        self.config = config
        self.database_url = database_url or get_settings().get_database_url()
        self.retry_policy = retry_policy or ConnectionRetryPolicy.from_config(config)
        self.engine: Optional[Engine] = None
        self._setup_engine()
    
    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name
    
    def _setup_engine(self):
        """Setup SQLAlchemy engine with connection pooling."""
        if self.database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": self.config.pool_timeout_seconds}
        else:
            connect_args = {
                "connect_timeout": int(self.config.pool_timeout_seconds),
                "application_name": "ledger_indexer",
            }
        
        self.engine = create_engine(
            self.database_url,
            poolclass=QueuePool,
            pool_size=self.config.pool_size,
            max_overflow=self.config.max_overflow,
            pool_timeout=self.config.pool_timeout_seconds,
            pool_pre_ping=True,
            pool_recycle=self.config.pool_recycle_hours * 3600,
            echo=False,
            connect_args=connect_args,
        )
        
        @event.listens_for(self.engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            logger.debug(f"New database connection established: {connection_record}")
        
        @event.listens_for(self.engine, "checkout")
        def on_checkout(dbapi_conn, connection_record, connection_proxy):
            logger.debug("Connection checked out from pool")
        
        @event.listens_for(self.engine, "checkin")
        def on_checkin(dbapi_conn, connection_record):
            logger.debug("Connection checked back into pool")
    
    def _checkout(self) -> Connection:
        try:
            return self.engine.connect()
        except (PoolTimeoutError, OperationalError) as e:
            get_metrics().unable_to_get_connection.inc()
            logger.error(
                f"Could not get DB connection from pool, will retry in "
                f"{self.config.pool_timeout_seconds}s. Err: {e}"
            )
            raise
    
    def get_connection(self) -> Connection:
        """Check a connection out of the pool, retrying per the retry policy.
        
        Returns:
            An open SQLAlchemy Connection. The caller must close it.
        
        Raises:
            ConnectionAcquireError: if the policy's attempts are exhausted.
        """
        policy = self.retry_policy
        retryer = Retrying(
            stop=stop_after_attempt(policy.max_attempts) if policy.max_attempts else stop_never,
            wait=wait_fixed(policy.wait_seconds),
            retry=retry_if_exception_type((PoolTimeoutError, OperationalError)),
            reraise=True,
        )
        try:
            for attempt in retryer:
                with attempt:
                    connection = self._checkout()
        except (PoolTimeoutError, OperationalError) as e:
            raise ConnectionAcquireError(
                f"Unable to get a DB connection after {policy.max_attempts} attempts: {e}"
            ) from e
        get_metrics().got_connection.inc()
        return connection
    
    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get database session on a pooled connection with automatic cleanup.
        
        The connection is always returned to the pool when the scope exits.
        
        Yields:
            SQLModel Session instance
        """
        connection = self.get_connection()
        session = Session(bind=connection)
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            session.rollback()
            raise
        finally:
            session.close()
            connection.close()
    
    def create_all_tables(self):
        """Create all tables defined in SQLModel metadata."""
        # registers every table on SQLModel.metadata
        import ledger_indexer.models  # noqa: F401
        
        try:
            SQLModel.metadata.create_all(self.engine)
            logger.info("All database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create database tables: {e}")
            raise
    
    def get_pool_status(self) -> dict:
        """Get connection pool status for monitoring.
        
        Returns:
            Dictionary with pool statistics
        """
        if not self.engine or not hasattr(self.engine.pool, 'size'):
            return {"status": "no_pool"}
        
        pool = self.engine.pool
        return {
            "pool_size": pool.size(),
            "checked_in": pool.checkedin(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
        }
    
    def dispose(self):
        if self.engine:
            self.engine.dispose()


# Global database connection instance
_db_connection: Optional[DatabaseConnection] = None


def get_database_connection() -> DatabaseConnection:
    """Get the global database connection instance.
    
    Returns:
        DatabaseConnection instance
    """
    global _db_connection
    if _db_connection is None:
        _db_connection = DatabaseConnection()
    return _db_connection
