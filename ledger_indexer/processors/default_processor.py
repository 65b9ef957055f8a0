"""
Default processor: decomposes every transaction into the transactions,
user_transactions, block_metadata_transactions, events and write_set_changes
tables.
"""

import asyncio
import logging
from typing import Optional, Sequence

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from ledger_indexer.database.connection import DatabaseConnection
from ledger_indexer.database.operations import insert_on_conflict_do_nothing
from ledger_indexer.indexer.exceptions import (
    ConnectionAcquireError,
    TransactionCommitError,
    TransactionParsingError,
)
from ledger_indexer.indexer.metadata_handle import PgProcessorMetadataHandle, upsert_processor_statuses
from ledger_indexer.indexer.transaction_processor import (
    ProcessingResult,
    ProcessorMetadataHandle,
    TransactionProcessor,
)
from ledger_indexer.models.events import Event
from ledger_indexer.models.processor_status import ProcessorStatus
from ledger_indexer.models.raw_transaction import RawTransaction
from ledger_indexer.models.transactions import (
    BlockMetadataTransaction,
    Transaction,
    TransactionRows,
    UserTransaction,
    from_transactions,
)
from ledger_indexer.models.write_set_changes import WriteSetChange
from ledger_indexer.utils import TRACE

logger = logging.getLogger(__name__)

NAME = "default"


class DefaultTransactionProcessor(TransactionProcessor):
    """Writes all five row families for a range in one read-write transaction.

    The success status rows are upserted in that same transaction, so a
    committed `success=true` always has its rows visible.
    """

    def __init__(self, db: DatabaseConnection, metadata_handle: Optional[ProcessorMetadataHandle] = None):
        self.db = db
        self._metadata_handle = metadata_handle or PgProcessorMetadataHandle(db)

    @property
    def name(self) -> str:
        return NAME

    @property
    def metadata_handle(self) -> ProcessorMetadataHandle:
        return self._metadata_handle

    async def process_transactions(
        self,
        transactions: Sequence[RawTransaction],
        start_version: int,
        end_version: int,
    ) -> ProcessingResult:
        try:
            rows = from_transactions(transactions)
        except (KeyError, ValueError, TypeError, ArithmeticError) as e:
            raise TransactionParsingError(e, start_version, end_version, self.name) from e

        await asyncio.to_thread(self._insert_to_db, rows, start_version, end_version)
        return ProcessingResult(self.name, start_version, end_version, status_committed=True)

    def _insert_to_db(self, rows: TransactionRows, start_version: int, end_version: int):
        logger.log(TRACE, f"[{self.name}] inserting versions {start_version} to {end_version}")
        try:
            with self.db.get_session() as session:
                with session.begin():
                    if self.db.dialect_name == "postgresql":
                        session.execute(text("SET TRANSACTION READ WRITE"))
                    insert_rows(session, rows)
                    upsert_processor_statuses(
                        session,
                        ProcessorStatus.from_versions(self.name, start_version, end_version, True, None),
                    )
        except (SQLAlchemyError, ConnectionAcquireError) as e:
            logger.error(f"[{self.name}] failed to commit versions {start_version} to {end_version}: {e}")
            raise TransactionCommitError(e, start_version, end_version, self.name) from e

    def __repr__(self) -> str:
        return f"DefaultTransactionProcessor(pool={self.db.get_pool_status()})"


def insert_rows(session: Session, rows: TransactionRows):
    """Insert every row family in dependency order within the caller's transaction."""
    insert_on_conflict_do_nothing(session, Transaction, rows.transactions)
    insert_on_conflict_do_nothing(session, UserTransaction, rows.user_transactions)
    insert_on_conflict_do_nothing(session, BlockMetadataTransaction, rows.block_metadata_transactions)
    insert_on_conflict_do_nothing(session, Event, rows.events)
    insert_on_conflict_do_nothing(session, WriteSetChange, rows.write_set_changes)

