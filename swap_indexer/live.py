"""Swap event indexer.

Runs one sync worker per tracked contract/network pair. Workers share the
HTTP client and the database engine but nothing else, so a failing pair
never stalls the others.

Processing flow per pair:
1. Backfill historical blocks in batches up to the observed head
2. Poll the head and process new blocks as they arrive
3. Roll back and re-process on chain reorganizations

Usage:
    python -m swap_indexer.live [--rpc-url URL] [--database-url URL] [--progress]
"""

from argparse import ArgumentParser
from contextlib import nullcontext
import signal
import sys

import asyncio

from rich.console import Console
from rich.table import Table

from swap_indexer.data.fetcher import ChainLogFetcher
from swap_indexer.data.swaps.store import SwapStore
from swap_indexer.data.sync.models import SyncState, SyncStatus
from swap_indexer.helpers.config import IndexerConfig, load_config
from swap_indexer.helpers.db import (
    create_session_factory,
    create_tables,
    get_database_url,
)
from swap_indexer.helpers.http import create_http_client
from swap_indexer.helpers.logging import get_logger
from swap_indexer.helpers.progress import create_backfill_progress
from swap_indexer.helpers.rpc import RPCClient
from swap_indexer.sync.driver import SyncDriver


logger = get_logger(__name__)


class IndexerRunner:
    """Runs and supervises the sync workers of all configured pairs."""

    def __init__(
        self,
        config: IndexerConfig,
        database_url: str,
        *,
        show_progress: bool = False,
        console: Console | None = None,
    ) -> None:
        self.config = config
        self.database_url = database_url
        self.show_progress = show_progress
        self.console = console or Console()
        self.drivers: list[SyncDriver] = []

        # Shutdown flag
        self.should_shutdown = False

    def shutdown(self) -> None:
        """Gracefully stop every worker."""
        logger.info("Shutdown signal received, stopping...")
        self.should_shutdown = True
        for driver in self.drivers:
            driver.shutdown()

    def print_status(self, statuses: list[SyncStatus]) -> None:
        """Render the final state of every pair."""
        table = Table(title="Sync Status")
        table.add_column("Chain", style="cyan")
        table.add_column("Contract", style="magenta")
        table.add_column("State", style="yellow")
        table.add_column("Last Synced", justify="right", style="green")
        table.add_column("Head", justify="right")
        table.add_column("Error", style="red")

        for status in statuses:
            last_synced = status.last_synced_block
            head = status.head_block
            table.add_row(
                str(status.chain_id),
                status.address,
                str(status.state),
                "-" if last_synced is None else f"{last_synced:,}",
                "-" if head is None else f"{head:,}",
                status.error or "",
            )

        self.console.print(table)

    async def run(self) -> list[SyncStatus]:
        """Run all workers until they finish or shutdown is requested.

        Returns:
            Final status of every worker, crashed workers reported in error
        """
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.shutdown)

        engine, session_factory = create_session_factory(self.database_url)
        statuses: list[SyncStatus] = []
        try:
            await create_tables(engine)
            store = SwapStore(session_factory, reorg_window=self.config.reorg_window)
            rpc_client = RPCClient(self.config.rpc_url, timeout=self.config.rpc_timeout)
            progress = (
                create_backfill_progress(self.console) if self.show_progress else None
            )

            async with create_http_client(timeout=self.config.rpc_timeout) as client:
                fetcher = ChainLogFetcher(
                    rpc_client,
                    client,
                    max_block_range=self.config.max_block_range,
                    max_batch_size=self.config.max_batch_size,
                    retry=self.config.retry,
                )
                self.drivers = [
                    SyncDriver(contract, self.config, fetcher, store, progress=progress)
                    for contract in self.config.contracts
                ]
                if self.should_shutdown:
                    return statuses

                with progress or nullcontext():
                    results = await asyncio.gather(
                        *(driver.run() for driver in self.drivers),
                        return_exceptions=True,
                    )

            for driver, result in zip(self.drivers, results, strict=True):
                if isinstance(result, BaseException):
                    logger.error(
                        "Sync worker %s crashed",
                        driver.name,
                        exc_info=(type(result), result, result.__traceback__),
                    )
                    statuses.append(
                        driver.status().model_copy(
                            update={
                                "state": SyncState.ERROR,
                                "error": str(result) or type(result).__name__,
                            }
                        )
                    )
                else:
                    statuses.append(result)
        finally:
            await engine.dispose()

        logger.info("Indexer stopped")
        return statuses


async def main(
    rpc_url: str | None = None,
    database_url: str | None = None,
    *,
    show_progress: bool = False,
) -> None:
    """Main entry point."""
    try:
        config = load_config(rpc_url)
        runner = IndexerRunner(
            config, database_url or get_database_url(), show_progress=show_progress
        )
        statuses = await runner.run()
        runner.print_status(statuses)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, exiting...")
    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


def run() -> None:
    """Parse command line arguments and run the indexer."""
    parser = ArgumentParser(description="Index Swap events into a database")
    parser.add_argument(
        "--rpc-url",
        default=None,
        help="JSON-RPC endpoint (default: ETH_RPC_URL)",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL or POSTGRE_*)",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show backfill progress bars",
    )
    args = parser.parse_args()

    asyncio.run(
        main(args.rpc_url, args.database_url, show_progress=args.progress)
    )


if __name__ == "__main__":
    run()
