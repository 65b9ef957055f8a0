"""
Event rows flattened out of each transaction.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import SQLModel, Field, Column, String, DateTime, Index

from ledger_indexer.models.types import JSONPayload, U64
from ledger_indexer.utils import parse_u64, utc_now


def parse_event_key(key: str) -> Tuple[int, str]:
    """Split a legacy event key into (creation_number, account_address).

    The key is 40 bytes of hex: an 8-byte little-endian creation number
    followed by the 32-byte account address.
    """
    raw = key[2:] if key.startswith("0x") else key
    if len(raw) != 80:
        raise ValueError(f"Malformed event key {key!r}")
    creation_number = int.from_bytes(bytes.fromhex(raw[:16]), "little")
    return creation_number, "0x" + raw[16:]


class Event(SQLModel, table=True):
    """Events table, keyed by the emitting event handle and sequence number."""

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_transaction_version", "transaction_version"),
        Index("idx_events_type", "type"),
    )

    account_address: str = Field(sa_column=Column(String(66), primary_key=True))
    creation_number: int = Field(sa_column=Column(U64(), primary_key=True))
    sequence_number: int = Field(sa_column=Column(U64(), primary_key=True))
    transaction_version: int = Field(sa_column=Column(U64(), nullable=False))
    type: str = Field(sa_column=Column(String, nullable=False))
    data: Optional[Any] = Field(default=None, sa_column=Column(JSONPayload))
    inserted_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    @classmethod
    def from_event(cls, transaction_version: int, event: Dict[str, Any]) -> "Event":
        guid = event.get("guid")
        if guid:
            creation_number = parse_u64(guid["creation_number"])
            account_address = guid["account_address"]
        else:
            creation_number, account_address = parse_event_key(event["key"])
        return cls(
            account_address=account_address,
            creation_number=creation_number,
            sequence_number=parse_u64(event["sequence_number"]),
            transaction_version=transaction_version,
            type=event["type"],
            data=event.get("data"),
        )

    @classmethod
    def from_events(cls, transaction_version: int, events: List[Dict[str, Any]]) -> List["Event"]:
        return [cls.from_event(transaction_version, event) for event in events]
