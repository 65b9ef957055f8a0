"""
Processor and tailer metadata maintained in the relational store.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ledger_indexer.database.connection import DatabaseConnection
from ledger_indexer.database.operations import insert_on_conflict_do_nothing, upsert_records
from ledger_indexer.indexer.exceptions import ConnectionAcquireError, MetadataStoreError
from ledger_indexer.indexer.transaction_processor import ProcessorMetadataHandle
from ledger_indexer.models.ledger_info import LedgerInfo
from ledger_indexer.models.processor_status import ProcessorStatus

logger = logging.getLogger(__name__)

_STATUS_UPDATE_COLUMNS = ["success", "details", "last_updated"]


def upsert_processor_statuses(session: Session, statuses: Sequence[ProcessorStatus]) -> int:
    """Upsert status rows within the caller's transaction.

    On (name, version) conflict only success, details and last_updated change.
    """
    return upsert_records(
        session,
        ProcessorStatus,
        statuses,
        conflict_columns=["name", "version"],
        update_columns=_STATUS_UPDATE_COLUMNS,
    )


class PgProcessorMetadataHandle(ProcessorMetadataHandle):
    """Processor status handle backed by the `processor_statuses` table.

    Any failure to read or write is fatal and raised as MetadataStoreError.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def apply_processor_status(self, statuses: Sequence[ProcessorStatus]) -> None:
        if not statuses:
            return
        await asyncio.to_thread(self._apply_processor_status_impl, list(statuses))

    async def get_error_versions(self, processor_name: str) -> List[int]:
        return await asyncio.to_thread(self._get_error_versions_impl, processor_name)

    async def get_max_version(self, processor_name: str) -> Optional[int]:
        return await asyncio.to_thread(self._get_max_version_impl, processor_name)

    def _apply_processor_status_impl(self, statuses: List[ProcessorStatus]):
        try:
            with self.db.get_session() as session:
                with session.begin():
                    upsert_processor_statuses(session, statuses)
        except (SQLAlchemyError, ConnectionAcquireError) as e:
            logger.error(f"Error updating Processor Status: {e}")
            raise MetadataStoreError(f"Error updating Processor Status: {e}") from e

    def _get_error_versions_impl(self, processor_name: str) -> List[int]:
        query = (
            select(ProcessorStatus.version)
            .where(ProcessorStatus.name == processor_name)
            .where(ProcessorStatus.success == False)  # noqa: E712
            .order_by(ProcessorStatus.version)
        )
        try:
            with self.db.get_session() as session:
                return list(session.exec(query).all())
        except (SQLAlchemyError, ConnectionAcquireError) as e:
            logger.error(f"Error loading the error versions for {processor_name}: {e}")
            raise MetadataStoreError(f"Error loading the error versions only query: {e}") from e

    def _get_max_version_impl(self, processor_name: str) -> Optional[int]:
        query = select(func.max(ProcessorStatus.version)).where(ProcessorStatus.name == processor_name)
        try:
            with self.db.get_session() as session:
                return session.exec(query).one()
        except (SQLAlchemyError, ConnectionAcquireError) as e:
            logger.error(f"Error loading the max version for {processor_name}: {e}")
            raise MetadataStoreError(f"Error loading the max version query: {e}") from e


class PgTailerMetadataHandle:
    """Reads and writes the `ledger_infos` row identifying the upstream chain."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    async def get_ledger_info(self) -> Optional[LedgerInfo]:
        return await asyncio.to_thread(self._get_ledger_info_impl)

    async def set_ledger_info(self, ledger_info: LedgerInfo) -> None:
        await asyncio.to_thread(self._set_ledger_info_impl, ledger_info)

    def _get_ledger_info_impl(self) -> Optional[LedgerInfo]:
        try:
            with self.db.get_session() as session:
                chain_id = session.exec(select(LedgerInfo.chain_id)).first()
        except (SQLAlchemyError, ConnectionAcquireError) as e:
            raise MetadataStoreError(f"Error loading ledger info: {e}") from e
        return LedgerInfo(chain_id=chain_id) if chain_id is not None else None

    def _set_ledger_info_impl(self, ledger_info: LedgerInfo):
        try:
            with self.db.get_session() as session:
                with session.begin():
                    insert_on_conflict_do_nothing(session, LedgerInfo, [{"chain_id": ledger_info.chain_id}])
        except (SQLAlchemyError, ConnectionAcquireError) as e:
            raise MetadataStoreError(f"Error writing ledger info: {e}") from e
