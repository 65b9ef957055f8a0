"""
The tailer: discovers the next range of unprocessed versions, fetches it,
dispatches it to every registered processor concurrently, and retries versions
whose processing previously failed.

Resume and retry points are recomputed from `processor_statuses` at the start
of every iteration, so the status table is the only state that survives a
restart.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ledger_indexer.indexer.exceptions import (
    ChainIdMismatchError,
    TransactionProcessingError,
    UpstreamFetchError,
)
from ledger_indexer.indexer.fetcher import TransactionFetcher
from ledger_indexer.indexer.metadata_handle import PgTailerMetadataHandle
from ledger_indexer.indexer.transaction_processor import ProcessingResult, TransactionProcessor
from ledger_indexer.models.ledger_info import LedgerInfo
from ledger_indexer.models.raw_transaction import RawTransaction

logger = logging.getLogger(__name__)


@dataclass
class IterationResult:
    """Outcome of one tailer iteration."""
    start_version: Optional[int] = None
    fetched: int = 0
    successes: List[ProcessingResult] = field(default_factory=list)
    errors: List[TransactionProcessingError] = field(default_factory=list)
    retried_versions: int = 0

    @property
    def ok(self) -> bool:
        return not self.errors


def group_versions(versions: Sequence[int], max_group_size: int) -> List[Tuple[int, int]]:
    """Group sorted versions into contiguous (start, count) runs of at most max_group_size."""
    groups: List[Tuple[int, int]] = []
    for version in versions:
        if groups:
            start, count = groups[-1]
            if version == start + count and count < max_group_size:
                groups[-1] = (start, count + 1)
                continue
        groups.append((version, 1))
    return groups


class Tailer:
    """Drives registered processors over the upstream transaction stream."""

    def __init__(
        self,
        fetcher: TransactionFetcher,
        tailer_metadata: Optional[PgTailerMetadataHandle] = None,
        batch_size: int = 500,
        retry_batch_size: int = 100,
        retry_budget: int = 1000,
        starting_version: int = 0,
        idle_backoff_seconds: float = 1.0,
    ):
        if batch_size <= 0 or retry_batch_size <= 0:
            raise ValueError("batch_size and retry_batch_size must be positive")
        self.fetcher = fetcher
        self.tailer_metadata = tailer_metadata
        self.batch_size = batch_size
        self.retry_batch_size = retry_batch_size
        self.retry_budget = retry_budget
        self.starting_version = starting_version
        self.idle_backoff_seconds = idle_backoff_seconds
        self.processors: List[TransactionProcessor] = []
        self._stopped = False

    def add_processor(self, processor: TransactionProcessor):
        if any(p.name == processor.name for p in self.processors):
            raise ValueError(f"Processor {processor.name} is already registered")
        logger.info(f"Adding processor to indexer: {processor.name}")
        self.processors.append(processor)

    def stop(self):
        """Stop the run loop at the next iteration boundary."""
        self._stopped = True

    async def check_or_update_chain_id(self) -> int:
        """Verify the upstream is the chain this store was built from.

        Stores the upstream chain id on first run.

        Raises:
            ChainIdMismatchError: if the stored chain id differs.
        """
        if self.tailer_metadata is None:
            raise RuntimeError("Tailer was created without a ledger-info handle")
        upstream = await self.fetcher.get_ledger_info()
        stored = await self.tailer_metadata.get_ledger_info()
        if stored is None:
            logger.info(f"Adding chain id {upstream.chain_id} to db, continue indexing")
            await self.tailer_metadata.set_ledger_info(LedgerInfo(chain_id=upstream.chain_id))
            return upstream.chain_id
        if stored.chain_id != upstream.chain_id:
            raise ChainIdMismatchError(stored.chain_id, upstream.chain_id)
        logger.info(f"Chain id matches! Continue to index chain id {upstream.chain_id}")
        return upstream.chain_id

    async def get_resume_version(self, processor: TransactionProcessor) -> int:
        max_version = await processor.metadata_handle.get_max_version(processor.name)
        if max_version is None:
            return self.starting_version
        return max_version + 1

    async def run(self, max_iterations: Optional[int] = None):
        """Run iterations until stopped or `max_iterations` is reached.

        Processing errors are logged and retried on later iterations. Any other
        exception (metadata store loss, crashes inside a processor) propagates.
        """
        if not self.processors:
            raise RuntimeError("No processors registered")
        self._stopped = False
        iterations = 0
        while not self._stopped and (max_iterations is None or iterations < max_iterations):
            result = await self.run_iteration()
            iterations += 1
            if result.fetched == 0 and result.retried_versions == 0 and not self._stopped:
                await asyncio.sleep(self.idle_backoff_seconds)
        logger.info(f"Tailer stopped after {iterations} iterations")

    async def run_iteration(self) -> IterationResult:
        """Process the next batch and retry previously failed versions once."""
        resume: Dict[str, int] = {}
        retry: Dict[str, List[int]] = {}
        for processor in self.processors:
            resume[processor.name] = await self.get_resume_version(processor)
            retry[processor.name] = await processor.metadata_handle.get_error_versions(processor.name)

        start_version = min(resume.values())
        result = IterationResult(start_version=start_version)

        batch = await self._fetch_batch(start_version)
        result.fetched = len(batch)

        tasks = [
            self._run_processor(
                processor,
                [txn for txn in batch if txn.version >= resume[processor.name]],
                retry[processor.name],
                result,
            )
            for processor in self.processors
        ]

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        self._collect(outcomes, result)

        if batch:
            logger.info(
                f"Processed batch {batch[0].version} to {batch[-1].version}: "
                f"{len(result.successes)} ranges succeeded, {len(result.errors)} failed, "
                f"{result.retried_versions} versions retried"
            )
        return result

    async def _fetch_batch(self, start_version: int) -> List[RawTransaction]:
        try:
            ledger = await self.fetcher.get_ledger_info()
            if ledger.ledger_version < start_version:
                logger.debug(f"Caught up at version {start_version}, ledger is at {ledger.ledger_version}")
                return []
            count = min(self.batch_size, ledger.ledger_version - start_version + 1)
            return await self.fetcher.fetch(start_version, count)
        except UpstreamFetchError as e:
            logger.warning(f"Could not fetch transactions from version {start_version}: {e}")
            return []

    async def _run_processor(
        self,
        processor: TransactionProcessor,
        transactions: List[RawTransaction],
        retry_versions: List[int],
        result: IterationResult,
    ) -> List[object]:
        """One processor's share of an iteration: the new batch, then its retries.

        Runs sequentially so a processor never has two ranges in flight.
        """
        outcomes: List[object] = []
        if transactions:
            try:
                outcomes.append(await processor.process_transactions_with_status(transactions))
            except TransactionProcessingError as tpe:
                outcomes.append(tpe)
        outcomes.extend(await self._retry_failed_versions(processor, retry_versions, result))
        return outcomes

    async def _retry_failed_versions(
        self, processor: TransactionProcessor, versions: List[int], result: IterationResult
    ) -> List[object]:
        """Re-fetch and reprocess error versions in contiguous groups.

        A group that fails again stays marked failed for a later iteration.
        """
        versions = versions[: self.retry_budget]
        if not versions:
            return []
        logger.info(f"[{processor.name}] Retrying {len(versions)} failed versions")
        outcomes: List[object] = []
        for group_start, group_count in group_versions(versions, self.retry_batch_size):
            try:
                transactions = await self.fetcher.fetch(group_start, group_count)
            except UpstreamFetchError as e:
                logger.warning(f"[{processor.name}] Could not fetch retry versions from {group_start}: {e}")
                continue
            if not transactions:
                continue
            result.retried_versions += len(transactions)
            try:
                outcomes.append(await processor.process_transactions_with_status(transactions))
            except TransactionProcessingError as tpe:
                outcomes.append(tpe)
        return outcomes

    def _collect(self, outcomes: Sequence[object], result: IterationResult):
        fatal: Optional[BaseException] = None
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                fatal = fatal or outcome
                continue
            for item in outcome:
                if isinstance(item, ProcessingResult):
                    result.successes.append(item)
                elif isinstance(item, TransactionProcessingError):
                    logger.error(f"Error processing transactions: {item}")
                    result.errors.append(item)
        if fatal is not None:
            raise fatal
