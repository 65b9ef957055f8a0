"""
Fetches ranges of transactions from the ledger's REST endpoint.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential,
)

from ledger_indexer.config.settings import FetcherConfig
from ledger_indexer.indexer.exceptions import UpstreamFetchError
from ledger_indexer.models.raw_transaction import RawTransaction
from ledger_indexer.utils import parse_u64

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpstreamLedgerInfo:
    """Identity and head of the upstream ledger."""
    chain_id: int
    ledger_version: int


class TransactionFetcher(ABC):
    """Source of raw transactions for the tailer.

    Implementations own upstream retry, backoff and pagination and surface a
    single success or failure per call.
    """

    @abstractmethod
    async def fetch(self, start_version: int, count: int) -> List[RawTransaction]:
        """Transactions with versions [start_version, start_version + count), in order.

        May return fewer than `count` (or none) when the upstream is caught up.
        """

    @abstractmethod
    async def get_ledger_info(self) -> UpstreamLedgerInfo:
        ...

    async def close(self):
        pass


class _ServerError(Exception):
    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"{response.status_code} from {response.request.url}")


class HttpTransactionFetcher(TransactionFetcher):
    """Fetcher for the ledger REST API.

    `GET /transactions?start=S&limit=N` returns the transaction array and
    `GET /` returns the ledger info. Transport errors and 5xx responses are
    retried with exponential backoff.
    """

    def __init__(
        self,
        node_url: str,
        config: Optional[FetcherConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the fetcher.
        
        Args:
            node_url: Base URL of the node's REST API (e.g. http://localhost:8080/v1)
            config: Timeout and retry configuration
            transport: Optional httpx transport, used to stub the node in tests
        """
        self.node_url = node_url.rstrip("/")
        self.config = config or FetcherConfig()
        self.client = httpx.AsyncClient(
            base_url=self.node_url,
            timeout=self.config.timeout_seconds,
            headers={"accept": "application/json"},
            transport=transport,
        )

    def _retryer(self) -> AsyncRetrying:
        max_retries = self.config.max_retries
        return AsyncRetrying(
            stop=stop_after_attempt(max_retries + 1) if max_retries is not None else stop_never,
            wait=wait_exponential(multiplier=self.config.backoff_multiplier, max=self.config.backoff_max_seconds),
            retry=retry_if_exception_type((httpx.TransportError, _ServerError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            async for attempt in self._retryer():
                with attempt:
                    response = await self.client.get(path, params=params)
                    if response.status_code >= 500:
                        raise _ServerError(response)
        except (httpx.TransportError, _ServerError) as e:
            logger.error(f"Request failed for {path} {params or ''}: {e}")
            raise UpstreamFetchError(f"Request failed for {path}: {e}") from e
        return response

    async def fetch(self, start_version: int, count: int) -> List[RawTransaction]:
        if count <= 0:
            return []
        
        response = await self._get("/transactions", {"start": start_version, "limit": count})
        
        # the node answers 404/410 for versions it has not reached or has pruned
        if response.status_code in (404, 410):
            logger.debug(f"No transactions available from version {start_version}: {response.status_code}")
            return []
        if response.is_error:
            raise UpstreamFetchError(
                f"Unexpected {response.status_code} fetching transactions from {start_version}: {response.text}",
                start_version,
            )
        
        try:
            payload = response.json()
            transactions = [RawTransaction.from_json(item) for item in payload]
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamFetchError(f"Malformed transactions payload from {start_version}: {e}", start_version) from e
        
        end_version = start_version + count
        transactions = [txn for txn in transactions if start_version <= txn.version < end_version]
        for offset, txn in enumerate(transactions):
            if txn.version != start_version + offset:
                raise UpstreamFetchError(
                    f"Non-contiguous versions from upstream: expected {start_version + offset}, got {txn.version}",
                    start_version,
                )
        
        logger.debug(f"Fetched {len(transactions)} transactions starting at version {start_version}")
        return transactions

    async def get_ledger_info(self) -> UpstreamLedgerInfo:
        response = await self._get("/")
        if response.is_error:
            raise UpstreamFetchError(f"Unexpected {response.status_code} fetching ledger info: {response.text}")
        try:
            data = response.json()
            return UpstreamLedgerInfo(
                chain_id=int(data["chain_id"]),
                ledger_version=parse_u64(data["ledger_version"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamFetchError(f"Malformed ledger info payload: {e}") from e

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self) -> "HttpTransactionFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
