"""
SQLModel database models for the ledger indexer.
"""

from .events import Event
from .ledger_info import LedgerInfo
from .processor_status import ProcessorStatus
from .raw_transaction import RawTransaction, TransactionType
from .transactions import (
    BlockMetadataTransaction,
    Transaction,
    TransactionRows,
    UserTransaction,
    from_transactions,
)
from .write_set_changes import WriteSetChange

__all__ = [
    # Row families
    "Transaction",
    "UserTransaction",
    "BlockMetadataTransaction",
    "Event",
    "WriteSetChange",
    "TransactionRows",
    "from_transactions",
    # Bookkeeping
    "ProcessorStatus",
    "LedgerInfo",
    # In-flight
    "RawTransaction",
    "TransactionType",
]
