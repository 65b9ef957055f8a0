"""
Per-(processor, version) bookkeeping that drives resume and retry.
"""

from datetime import datetime
from typing import List, Optional

from sqlmodel import SQLModel, Field, Column, String, Boolean, DateTime, Text, Index

from ledger_indexer.models.types import U64
from ledger_indexer.utils import utc_now


class ProcessorStatus(SQLModel, table=True):
    """Processor status table.

    `success=False, details=None` is the started state. It is overwritten in
    place with `success=True` or `success=False` plus the error details.
    """

    __tablename__ = "processor_statuses"
    __table_args__ = (
        Index("idx_processor_statuses_name_success", "name", "success"),
    )

    name: str = Field(sa_column=Column(String(50), primary_key=True))
    version: int = Field(sa_column=Column(U64(), primary_key=True))
    success: bool = Field(sa_column=Column(Boolean, nullable=False))
    details: Optional[str] = Field(default=None, sa_column=Column(Text))
    last_updated: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    @classmethod
    def from_versions(
        cls,
        name: str,
        start_version: int,
        end_version: int,
        success: bool,
        details: Optional[str] = None,
    ) -> List["ProcessorStatus"]:
        """One status row per version in [start_version, end_version]."""
        now = utc_now()
        return [
            cls(name=name, version=version, success=success, details=details, last_updated=now)
            for version in range(start_version, end_version + 1)
        ]
