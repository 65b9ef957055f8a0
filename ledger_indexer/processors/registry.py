"""
Processors available to the tailer, by the name they record in
`processor_statuses`.
"""

from typing import Dict, List, Type

from ledger_indexer.database.connection import DatabaseConnection
from ledger_indexer.indexer.transaction_processor import TransactionProcessor
from ledger_indexer.processors.default_processor import NAME as DEFAULT_PROCESSOR_NAME
from ledger_indexer.processors.default_processor import DefaultTransactionProcessor

PROCESSOR_REGISTRY: Dict[str, Type[TransactionProcessor]] = {
    DEFAULT_PROCESSOR_NAME: DefaultTransactionProcessor,
}


def build_processor(name: str, db: DatabaseConnection) -> TransactionProcessor:
    """Instantiate a registered processor by name."""
    try:
        processor_class = PROCESSOR_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown processor {name!r}, expected one of {sorted(PROCESSOR_REGISTRY)}") from None
    return processor_class(db)


def build_processors(names: List[str], db: DatabaseConnection) -> List[TransactionProcessor]:
    return [build_processor(name, db) for name in names]
