"""Tests for the processor status and ledger info handles."""

import pytest

from ledger_indexer.database.connection import ConnectionRetryPolicy, DatabaseConnection
from ledger_indexer.indexer.exceptions import MetadataStoreError
from ledger_indexer.indexer.metadata_handle import PgProcessorMetadataHandle, PgTailerMetadataHandle
from ledger_indexer.models import LedgerInfo, ProcessorStatus

from tests.factories import status_rows


@pytest.fixture
def handle(db):
    return PgProcessorMetadataHandle(db)


class TestProcessorMetadataHandle:

    @pytest.mark.asyncio
    async def test_empty_store(self, handle):
        assert await handle.get_max_version("default") is None
        assert await handle.get_error_versions("default") == []

    @pytest.mark.asyncio
    async def test_started_versions_count_as_errors(self, handle):
        await handle.apply_processor_status(ProcessorStatus.from_versions("default", 0, 4, False))
        await handle.apply_processor_status(ProcessorStatus.from_versions("default", 0, 2, True))

        assert await handle.get_error_versions("default") == [3, 4]
        assert await handle.get_max_version("default") == 4

    @pytest.mark.asyncio
    async def test_upsert_overwrites_details(self, db, handle):
        await handle.apply_processor_status(ProcessorStatus.from_versions("default", 7, 7, False))
        await handle.apply_processor_status(
            ProcessorStatus.from_versions("default", 7, 7, False, "TransactionCommitError boom")
        )

        rows = status_rows(db, "default")
        assert len(rows) == 1
        assert rows[0].details == "TransactionCommitError boom"

        await handle.apply_processor_status(ProcessorStatus.from_versions("default", 7, 7, True))
        assert status_rows(db, "default")[0].success is True

    @pytest.mark.asyncio
    async def test_versions_order_numerically(self, handle):
        versions = [100, 9, 18446744073709551615, 10]
        for version in versions:
            await handle.apply_processor_status(ProcessorStatus.from_versions("default", version, version, False))

        assert await handle.get_error_versions("default") == sorted(versions)
        assert await handle.get_max_version("default") == 18446744073709551615

    @pytest.mark.asyncio
    async def test_processors_are_isolated(self, handle):
        await handle.apply_processor_status(ProcessorStatus.from_versions("default", 0, 9, True))
        await handle.apply_processor_status(ProcessorStatus.from_versions("token", 0, 2, False))

        assert await handle.get_max_version("default") == 9
        assert await handle.get_max_version("token") == 2
        assert await handle.get_error_versions("default") == []
        assert await handle.get_error_versions("token") == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_missing_store_is_fatal(self, tmp_path, db_config, metrics):
        missing = DatabaseConnection(
            f"sqlite:///{tmp_path / 'empty.db'}", db_config, ConnectionRetryPolicy(max_attempts=1)
        )
        try:
            with pytest.raises(MetadataStoreError):
                await PgProcessorMetadataHandle(missing).get_max_version("default")
            with pytest.raises(MetadataStoreError):
                await PgProcessorMetadataHandle(missing).apply_processor_status(
                    ProcessorStatus.from_versions("default", 0, 0, False)
                )
        finally:
            missing.dispose()


class TestTailerMetadataHandle:

    @pytest.mark.asyncio
    async def test_ledger_info_is_written_once(self, db):
        handle = PgTailerMetadataHandle(db)
        assert await handle.get_ledger_info() is None

        await handle.set_ledger_info(LedgerInfo(chain_id=4))
        await handle.set_ledger_info(LedgerInfo(chain_id=4))

        stored = await handle.get_ledger_info()
        assert stored.chain_id == 4
