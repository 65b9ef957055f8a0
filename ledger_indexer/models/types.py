"""
Custom column types shared by the indexer's SQLModel tables.
"""

from decimal import Decimal

from sqlalchemy import JSON, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator

from ledger_indexer.utils import check_u64, decimal_to_u64, u64_to_decimal

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class U64(TypeDecorator):
    """Unsigned 64-bit integer stored losslessly.

    PostgreSQL stores NUMERIC(20, 0). SQLite has no integer wide enough, so the
    value is written as a zero-padded 20-digit string which keeps ORDER BY and
    MAX() numeric.
    """

    impl = Numeric(20, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(20))
        return dialect.type_descriptor(Numeric(20, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, (Decimal, str)):
            value = decimal_to_u64(value)
        if dialect.name == "sqlite":
            return f"{check_u64(value):020d}"
        return u64_to_decimal(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return decimal_to_u64(value)
