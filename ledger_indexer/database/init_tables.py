"""
Database table initialization script.
Creates all tables defined in SQLModel schemas.
"""

import logging
from typing import Optional

from ledger_indexer.database.connection import DatabaseConnection, get_database_connection

logger = logging.getLogger(__name__)


def create_all_tables(db: Optional[DatabaseConnection] = None) -> bool:
    """Create all database tables."""
    try:
        db = db or get_database_connection()
        logger.info("Creating all database tables...")
        db.create_all_tables()
        logger.info("All tables created successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        return False


def init_database(db: Optional[DatabaseConnection] = None) -> dict:
    """Initialize database with all required tables."""
    logger.info("Initializing database schema...")
    
    success = create_all_tables(db)
    
    if success:
        logger.info("Database initialization completed successfully")
        return {"status": "success", "message": "All tables created"}
    else:
        logger.error("Database initialization failed")
        return {"status": "failed", "message": "Table creation failed"}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    result = init_database()
    print(f"Database initialization: {result}")
