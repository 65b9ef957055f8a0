"""
Identity of the upstream ledger the store was populated from.
"""

from sqlmodel import SQLModel, Field, Column, BigInteger


class LedgerInfo(SQLModel, table=True):
    """Single-row table holding the upstream chain id."""

    __tablename__ = "ledger_infos"

    chain_id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
