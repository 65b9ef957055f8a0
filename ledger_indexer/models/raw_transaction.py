"""
In-flight representation of a transaction returned by the ledger REST API.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from ledger_indexer.utils import parse_u64


class TransactionType(str, Enum):
    """Variants with their own row family; any other type only gets a `transactions` row."""
    USER = "user_transaction"
    BLOCK_METADATA = "block_metadata_transaction"


@dataclass(frozen=True)
class RawTransaction:
    """A raw ledger transaction, kept only while it is being processed."""
    version: int
    type: str
    data: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "RawTransaction":
        """Build from one element of the `/transactions` JSON array.

        Raises:
            KeyError: if the payload has no version.
            ValueError: if the version is not a valid u64.
        """
        return cls(
            version=parse_u64(payload["version"]),
            type=payload.get("type", ""),
            data=payload,
        )

    @property
    def is_user(self) -> bool:
        return self.type == TransactionType.USER.value

    @property
    def is_block_metadata(self) -> bool:
        return self.type == TransactionType.BLOCK_METADATA.value

    @property
    def events(self) -> List[Dict[str, Any]]:
        return self.data.get("events") or []

    @property
    def changes(self) -> List[Dict[str, Any]]:
        return self.data.get("changes") or []
