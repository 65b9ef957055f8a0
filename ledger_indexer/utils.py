"""
Shared helpers: lossless u64 <-> Decimal conversion, ledger timestamp parsing
and the TRACE log level used for per-range insert logging.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Union

U64_MAX = 2 ** 64 - 1

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_EPOCH = datetime(1970, 1, 1)
# 9999-12-31T23:59:59, the last second a datetime can hold
MAX_TIMESTAMP_SECS = 253402300799


def check_u64(value: int) -> int:
    """Return value unchanged if it fits in an unsigned 64-bit integer."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Expected an integer version, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise ValueError(f"Value {value} is outside the u64 range")
    return value


def u64_to_decimal(value: int) -> Decimal:
    """Widen a u64 into the arbitrary-precision decimal the store uses."""
    return Decimal(check_u64(value))


def decimal_to_u64(value: Union[Decimal, int, str]) -> int:
    """Narrow a stored decimal back to a u64.

    Raises:
        ValueError: if the value is fractional or falls outside [0, 2^64).
    """
    dec = value if isinstance(value, Decimal) else Decimal(value)
    if not dec.is_finite() or dec != dec.to_integral_value():
        raise ValueError(f"Unable to convert {value!r} to u64")
    return check_u64(int(dec))


def parse_u64(value: Union[str, int]) -> int:
    """Parse a string-encoded u64 as returned by the ledger REST API."""
    return check_u64(int(value))


def parse_timestamp_usecs(value: Union[str, int, None]) -> datetime:
    """Convert a microsecond unix timestamp into a naive UTC datetime.

    Values past the last representable second are clamped to it.
    """
    if value is None:
        return _EPOCH
    usecs = min(max(int(value), 0), MAX_TIMESTAMP_SECS * 1_000_000)
    return _EPOCH + timedelta(microseconds=usecs)


def parse_timestamp_secs(value: Union[str, int, None]) -> datetime:
    if value is None:
        return _EPOCH
    # expiration timestamps are user supplied and may be any u64
    secs = min(max(int(value), 0), MAX_TIMESTAMP_SECS)
    return _EPOCH + timedelta(seconds=secs)


def utc_now() -> datetime:
    """Naive UTC now, matching the timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
