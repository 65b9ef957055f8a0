"""
Run the indexer: `python -m ledger_indexer [config_path]`.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from ledger_indexer.config.settings import Settings, reload_settings
from ledger_indexer.database.connection import DatabaseConnection
from ledger_indexer.indexer.fetcher import HttpTransactionFetcher
from ledger_indexer.indexer.metadata_handle import PgTailerMetadataHandle
from ledger_indexer.indexer.tailer import Tailer
from ledger_indexer.processors.registry import build_processors

logger = logging.getLogger("ledger_indexer")


def configure_logging(level: str):
    logging.basicConfig(
        level=logging.getLevelName(level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def build_tailer(settings: Settings, db: DatabaseConnection, fetcher: HttpTransactionFetcher) -> Tailer:
    """Wire a tailer with every configured processor."""
    config = settings.indexer
    tailer = Tailer(
        fetcher,
        tailer_metadata=PgTailerMetadataHandle(db),
        batch_size=config.batch_size,
        retry_batch_size=config.retry_batch_size,
        retry_budget=config.retry_budget,
        starting_version=config.starting_version,
        idle_backoff_seconds=config.idle_backoff_seconds,
    )
    for processor in build_processors(config.processors, db):
        tailer.add_processor(processor)
    return tailer


async def run_indexer(settings: Settings):
    db = DatabaseConnection(settings.get_database_url(), settings.database)
    if settings.indexer.create_tables:
        db.create_all_tables()

    fetcher = HttpTransactionFetcher(settings.indexer.node_url, settings.fetcher)
    tailer = build_tailer(settings, db, fetcher)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, tailer.stop)
        except NotImplementedError:
            pass

    try:
        if settings.indexer.check_chain_id:
            await tailer.check_or_update_chain_id()
        logger.info(f"Indexing {settings.indexer.node_url} with processors {settings.indexer.processors}")
        await tailer.run()
    finally:
        await fetcher.close()
        db.dispose()


def main(argv: Optional[list] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    settings = reload_settings(argv[0] if argv else None)
    configure_logging(settings.logging.level)
    try:
        asyncio.run(run_indexer(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
