"""
Transaction row families: the common `transactions` row plus the variant
specific `user_transactions` and `block_metadata_transactions` rows.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlmodel import SQLModel, Field, Column, String, Boolean, DateTime, Index

from ledger_indexer.models.events import Event
from ledger_indexer.models.raw_transaction import RawTransaction
from ledger_indexer.models.types import JSONPayload, U64
from ledger_indexer.models.write_set_changes import WriteSetChange
from ledger_indexer.utils import (
    parse_timestamp_secs,
    parse_timestamp_usecs,
    parse_u64,
    utc_now,
)


class Transaction(SQLModel, table=True):
    """One row per ledger transaction, whatever its variant."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("idx_transactions_hash", "hash"),
    )

    version: int = Field(sa_column=Column(U64(), primary_key=True))
    hash: str = Field(sa_column=Column(String(66), nullable=False))
    type: str = Field(sa_column=Column(String(50), nullable=False))
    state_change_hash: str = Field(sa_column=Column(String(66), nullable=False))
    event_root_hash: str = Field(sa_column=Column(String(66), nullable=False))
    gas_used: int = Field(sa_column=Column(U64(), nullable=False))
    success: bool = Field(sa_column=Column(Boolean, nullable=False))
    vm_status: str = Field(sa_column=Column(String, nullable=False))
    accumulator_root_hash: str = Field(sa_column=Column(String(66), nullable=False))
    inserted_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    @classmethod
    def from_raw(cls, txn: RawTransaction) -> "Transaction":
        data = txn.data
        return cls(
            version=txn.version,
            hash=data["hash"],
            type=txn.type,
            # older nodes report state_root_hash
            state_change_hash=data.get("state_change_hash") or data["state_root_hash"],
            event_root_hash=data["event_root_hash"],
            gas_used=parse_u64(data.get("gas_used", 0)),
            success=bool(data["success"]),
            vm_status=data.get("vm_status", ""),
            accumulator_root_hash=data["accumulator_root_hash"],
        )


class UserTransaction(SQLModel, table=True):
    """Sender-submitted transaction details."""

    __tablename__ = "user_transactions"
    __table_args__ = (
        Index("idx_user_transactions_sender_seq", "sender", "sequence_number"),
        Index("idx_user_transactions_entry_function", "entry_function_id_str"),
    )

    version: int = Field(sa_column=Column(U64(), primary_key=True))
    parent_signature_type: str = Field(sa_column=Column(String(50), nullable=False))
    sender: str = Field(sa_column=Column(String(66), nullable=False))
    sequence_number: int = Field(sa_column=Column(U64(), nullable=False))
    max_gas_amount: int = Field(sa_column=Column(U64(), nullable=False))
    expiration_timestamp_secs: datetime = Field(sa_column=Column(DateTime, nullable=False))
    gas_unit_price: int = Field(sa_column=Column(U64(), nullable=False))
    timestamp: datetime = Field(sa_column=Column(DateTime, nullable=False))
    entry_function_id_str: Optional[str] = Field(default=None, sa_column=Column(String(255)))
    payload: Optional[Any] = Field(default=None, sa_column=Column(JSONPayload))
    inserted_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    @classmethod
    def from_raw(cls, txn: RawTransaction) -> "UserTransaction":
        data = txn.data
        payload = data.get("payload") or {}
        signature = data.get("signature") or {}
        return cls(
            version=txn.version,
            parent_signature_type=signature.get("type", ""),
            sender=data["sender"],
            sequence_number=parse_u64(data["sequence_number"]),
            max_gas_amount=parse_u64(data["max_gas_amount"]),
            expiration_timestamp_secs=parse_timestamp_secs(data.get("expiration_timestamp_secs")),
            gas_unit_price=parse_u64(data["gas_unit_price"]),
            timestamp=parse_timestamp_usecs(data.get("timestamp")),
            entry_function_id_str=payload.get("function"),
            payload=payload or None,
        )


class BlockMetadataTransaction(SQLModel, table=True):
    """Block boundary marker emitted by consensus."""

    __tablename__ = "block_metadata_transactions"
    __table_args__ = (
        Index("idx_block_metadata_transactions_round", "epoch", "round"),
    )

    version: int = Field(sa_column=Column(U64(), primary_key=True))
    id: str = Field(sa_column=Column(String(66), nullable=False))
    round: int = Field(sa_column=Column(U64(), nullable=False))
    epoch: Optional[int] = Field(default=None, sa_column=Column(U64()))
    previous_block_votes: Optional[Any] = Field(default=None, sa_column=Column(JSONPayload))
    proposer: str = Field(sa_column=Column(String(66), nullable=False))
    timestamp: datetime = Field(sa_column=Column(DateTime, nullable=False))
    inserted_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    @classmethod
    def from_raw(cls, txn: RawTransaction) -> "BlockMetadataTransaction":
        data = txn.data
        votes = data.get("previous_block_votes")
        if votes is None:
            votes = data.get("previous_block_votes_bitvec")
        epoch = data.get("epoch")
        return cls(
            version=txn.version,
            id=data["id"],
            round=parse_u64(data["round"]),
            epoch=parse_u64(epoch) if epoch is not None else None,
            previous_block_votes=votes,
            proposer=data["proposer"],
            timestamp=parse_timestamp_usecs(data.get("timestamp")),
        )


@dataclass
class TransactionRows:
    """The five row families derived from a range of raw transactions."""
    transactions: List[Transaction] = field(default_factory=list)
    user_transactions: List[UserTransaction] = field(default_factory=list)
    block_metadata_transactions: List[BlockMetadataTransaction] = field(default_factory=list)
    events: List[Event] = field(default_factory=list)
    write_set_changes: List[WriteSetChange] = field(default_factory=list)


def from_transactions(transactions: Sequence[RawTransaction]) -> TransactionRows:
    """Decompose raw transactions into row families, preserving order.

    Raises:
        KeyError, ValueError, TypeError: if a transaction is missing or has a
        malformed field. Callers wrap these as parsing errors.
    """
    rows = TransactionRows()
    for txn in transactions:
        base = Transaction.from_raw(txn)
        rows.transactions.append(base)
        if txn.is_user:
            rows.user_transactions.append(UserTransaction.from_raw(txn))
        elif txn.is_block_metadata:
            rows.block_metadata_transactions.append(BlockMetadataTransaction.from_raw(txn))
        rows.events.extend(Event.from_events(txn.version, txn.events))
        rows.write_set_changes.extend(
            WriteSetChange.from_changes(txn.version, base.hash, txn.changes)
        )
    return rows
