"""
Write-set change rows, one per state change a transaction made.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import SQLModel, Field, Column, String, Integer, DateTime, Index

from ledger_indexer.models.types import JSONPayload, U64
from ledger_indexer.utils import utc_now

# Keys lifted into their own columns; everything else lands in `data`
_COLUMN_KEYS = ("type", "address", "state_key_hash")


class WriteSetChange(SQLModel, table=True):
    """Write-set changes table, keyed by (transaction_version, index)."""

    __tablename__ = "write_set_changes"
    __table_args__ = (
        Index("idx_write_set_changes_address_type", "address", "type"),
    )

    transaction_version: int = Field(sa_column=Column(U64(), primary_key=True))
    index: int = Field(sa_column=Column(Integer, primary_key=True, autoincrement=False))
    hash: str = Field(sa_column=Column(String(66), nullable=False))
    type: str = Field(sa_column=Column(String(50), nullable=False))
    address: str = Field(sa_column=Column(String(66), nullable=False))
    state_key_hash: str = Field(sa_column=Column(String(66), nullable=False))
    data: Optional[Any] = Field(default=None, sa_column=Column(JSONPayload))
    inserted_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    @classmethod
    def from_change(
        cls, transaction_version: int, index: int, transaction_hash: str, change: Dict[str, Any]
    ) -> "WriteSetChange":
        # table item changes carry a handle instead of an address
        address = change.get("address") or change.get("handle") or ""
        payload = {k: v for k, v in change.items() if k not in _COLUMN_KEYS}
        return cls(
            transaction_version=transaction_version,
            index=index,
            hash=transaction_hash,
            type=change["type"],
            address=address,
            state_key_hash=change.get("state_key_hash", ""),
            data=payload or None,
        )

    @classmethod
    def from_changes(
        cls, transaction_version: int, transaction_hash: str, changes: List[Dict[str, Any]]
    ) -> List["WriteSetChange"]:
        return [
            cls.from_change(transaction_version, index, transaction_hash, change)
            for index, change in enumerate(changes)
        ]
