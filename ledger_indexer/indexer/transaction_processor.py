"""
Processor contract: a named transformation of raw transactions into durable
rows, plus the status bookkeeping every processor shares.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ledger_indexer.indexer.exceptions import TransactionProcessingError
from ledger_indexer.indexer.metrics import get_metrics
from ledger_indexer.models.processor_status import ProcessorStatus
from ledger_indexer.models.raw_transaction import RawTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingResult:
    """Successful outcome of processing [start_version, end_version].

    `status_committed` is set when the processor already wrote the success
    status rows inside its own backend transaction.
    """
    name: str
    start_version: int
    end_version: int
    status_committed: bool = False


class ProcessorMetadataHandle(ABC):
    """Reads and writes per-processor, per-version status."""

    @abstractmethod
    async def apply_processor_status(self, statuses: Sequence[ProcessorStatus]) -> None:
        """Upsert status rows by (name, version)."""

    @abstractmethod
    async def get_error_versions(self, processor_name: str) -> List[int]:
        """Versions not successfully processed (started or errored), ascending.

        The tailer retries these.
        """

    @abstractmethod
    async def get_max_version(self, processor_name: str) -> Optional[int]:
        """Highest version with any status row, so restarts know where to resume."""


class TransactionProcessor(ABC):
    """Base class for processors run by the `Tailer`."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stored in `processor_statuses` for each (processor, version) pair."""

    @property
    @abstractmethod
    def metadata_handle(self) -> ProcessorMetadataHandle:
        ...

    @abstractmethod
    async def process_transactions(
        self,
        transactions: Sequence[RawTransaction],
        start_version: int,
        end_version: int,
    ) -> ProcessingResult:
        """Durably commit every row derived from `transactions`.

        A failure of any transaction fails the whole range.

        Raises:
            TransactionProcessingError: nothing from the range was committed.
        """

    async def process_transactions_with_status(
        self, transactions: Sequence[RawTransaction]
    ) -> ProcessingResult:
        """Process a range while tracking its status in the metadata store.

        Marks every version started, runs `process_transactions`, then marks the
        range succeeded or errored. Processing errors are recorded and re-raised;
        anything else propagates untouched and leaves the range started.
        """
        assert transactions, "Must provide at least one transaction to this function"
        get_metrics().processor_invocations.labels(self.name).inc()

        start_version = transactions[0].version
        end_version = transactions[-1].version
        await self.mark_versions_started(start_version, end_version)

        try:
            result = await self.process_transactions(transactions, start_version, end_version)
        except TransactionProcessingError as tpe:
            await self.update_status_err(tpe)
            raise

        await self.update_status_success(result)
        return result

    async def mark_versions_started(self, start_version: int, end_version: int):
        logger.debug(
            f"[{self.name}] Marking processing versions started from versions {start_version} to {end_version}"
        )
        statuses = ProcessorStatus.from_versions(self.name, start_version, end_version, False, None)
        await self.metadata_handle.apply_processor_status(statuses)

    async def update_status_success(self, result: ProcessingResult):
        logger.debug(
            f"[{self.name}] Marking processing version OK from versions "
            f"{result.start_version} to {result.end_version}"
        )
        get_metrics().processor_successes.labels(self.name).inc()
        if result.status_committed:
            return
        statuses = ProcessorStatus.from_versions(
            self.name, result.start_version, result.end_version, True, None
        )
        await self.metadata_handle.apply_processor_status(statuses)

    async def update_status_err(self, tpe: TransactionProcessingError):
        logger.debug(f"[{self.name}] Marking processing version Err: {tpe}")
        get_metrics().processor_errors.labels(self.name).inc()
        statuses = ProcessorStatus.from_versions(
            self.name, tpe.start_version, tpe.end_version, False, str(tpe)
        )
        await self.metadata_handle.apply_processor_status(statuses)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
