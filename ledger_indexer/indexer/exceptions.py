"""
Error taxonomy for the indexer.
"""

from typing import Optional


class IndexerError(Exception):
    """Base class for all indexer errors."""


class TransactionProcessingError(IndexerError):
    """A processor failed to durably commit a range of versions.

    Carries the wrapped cause, the range and the processor name. The string
    form is what gets written to `processor_statuses.details`.
    """

    kind = "TransactionProcessingError"

    def __init__(self, cause: BaseException, start_version: int, end_version: int, name: str):
        self.cause = cause
        self.start_version = start_version
        self.end_version = end_version
        self.name = name
        super().__init__(str(self))

    def __str__(self) -> str:
        return (
            f"{self.kind} [{self.name}] versions {self.start_version} to {self.end_version}: "
            f"{type(self.cause).__name__}: {self.cause}"
        )


class TransactionParsingError(TransactionProcessingError):
    """A raw transaction could not be mapped to row families."""

    kind = "TransactionParsingError"


class TransactionCommitError(TransactionProcessingError):
    """The backend rejected or failed to commit the range."""

    kind = "TransactionCommitError"


class UpstreamFetchError(IndexerError):
    """The ledger REST endpoint could not be read."""

    def __init__(self, message: str, start_version: Optional[int] = None):
        self.start_version = start_version
        super().__init__(message)


class ConnectionAcquireError(IndexerError):
    """No pooled connection could be obtained within the retry policy."""


class MetadataStoreError(IndexerError):
    """The processor status store is unavailable. Fatal."""


class ChainIdMismatchError(IndexerError):
    """The upstream ledger is not the one this store was populated from. Fatal."""

    def __init__(self, stored_chain_id: int, upstream_chain_id: int):
        self.stored_chain_id = stored_chain_id
        self.upstream_chain_id = upstream_chain_id
        super().__init__(
            f"Chain id mismatch: database has {stored_chain_id}, upstream reports {upstream_chain_id}"
        )
