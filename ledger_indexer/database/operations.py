"""
Database operations module for chunked INSERT ... ON CONFLICT statements.
Keeps every statement under the backend's bind-parameter limit.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, Union

from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, SQLModel

from ledger_indexer.utils import TRACE

logger = logging.getLogger(__name__)

# PostgreSQL caps bind parameters per statement at 65535
MAX_PARAMS_PER_STATEMENT = 65535
# SQLITE_MAX_VARIABLE_NUMBER since 3.32
SQLITE_MAX_PARAMS_PER_STATEMENT = 32766


def get_chunks(
    num_items: int, field_count: int, max_params: int = MAX_PARAMS_PER_STATEMENT
) -> List[Tuple[int, int]]:
    """Split `num_items` rows into [start, end) slices that fit the parameter limit.
    
    Args:
        num_items: Number of rows to insert
        field_count: Number of bound columns per row
        max_params: Bind-parameter limit of the backend
        
    Returns:
        List of (start_index, end_index) pairs
    """
    chunk_size = max(1, max_params // field_count)
    return [
        (start, min(start + chunk_size, num_items))
        for start in range(0, num_items, chunk_size)
    ]


def field_count(model_class: Type[SQLModel]) -> int:
    """Number of columns a row of `model_class` binds."""
    return len(model_class.__table__.columns)


def _insert_for(session: Session):
    """Pick the dialect-specific INSERT construct that supports ON CONFLICT."""
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"ON CONFLICT inserts are not supported on {dialect_name}")


def _max_params_for(session: Session) -> int:
    if session.get_bind().dialect.name == "sqlite":
        return SQLITE_MAX_PARAMS_PER_STATEMENT
    return MAX_PARAMS_PER_STATEMENT


def _to_records(rows: Sequence[Union[SQLModel, Dict[str, Any]]]) -> List[Dict[str, Any]]:
    return [row if isinstance(row, dict) else row.model_dump() for row in rows]


def insert_on_conflict_do_nothing(
    session: Session,
    model_class: Type[SQLModel],
    rows: Sequence[Union[SQLModel, Dict[str, Any]]],
    max_params: Optional[int] = None,
) -> int:
    """Insert rows in parameter-limited chunks, ignoring primary-key conflicts.
    
    Runs inside the caller's transaction; nothing is committed here.
    
    Returns:
        Number of chunks executed
    """
    if not rows:
        return 0
    
    table = model_class.__table__
    insert = _insert_for(session)
    records = _to_records(rows)
    chunks = get_chunks(len(records), field_count(model_class), max_params or _max_params_for(session))
    
    for start_ind, end_ind in chunks:
        stmt = insert(table).values(records[start_ind:end_ind]).on_conflict_do_nothing()
        session.execute(stmt)
    
    logger.log(TRACE, f"Inserted {len(records)} rows into {table.name} in {len(chunks)} chunks")
    return len(chunks)


def upsert_records(
    session: Session,
    model_class: Type[SQLModel],
    rows: Sequence[Union[SQLModel, Dict[str, Any]]],
    conflict_columns: List[str],
    update_columns: Optional[List[str]] = None,
    max_params: Optional[int] = None,
) -> int:
    """Insert rows in parameter-limited chunks, overwriting `update_columns` on conflict.
    
    Args:
        session: Database session; the caller owns the transaction
        model_class: SQLModel class for the target table
        rows: Model instances or column dictionaries
        conflict_columns: Columns of the conflicting unique key
        update_columns: Columns to overwrite (all non-conflict columns if None)
        max_params: Bind-parameter limit of the backend
        
    Returns:
        Number of chunks executed
    """
    if not rows:
        return 0
    
    table = model_class.__table__
    if update_columns is None:
        update_columns = [col.name for col in table.columns if col.name not in conflict_columns]
    
    insert = _insert_for(session)
    records = _to_records(rows)
    chunks = get_chunks(len(records), field_count(model_class), max_params or _max_params_for(session))
    
    for start_ind, end_ind in chunks:
        stmt = insert(table).values(records[start_ind:end_ind])
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_columns,
            set_={col: stmt.excluded[col] for col in update_columns},
        )
        session.execute(stmt)
    
    logger.log(TRACE, f"Upserted {len(records)} rows into {table.name} in {len(chunks)} chunks")
    return len(chunks)
