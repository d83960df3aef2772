"""Sync driver for one tracked contract/network pair.

The driver moves a checkpoint forward through the chain:

1. Backfilling - historical ranges from the start block up to the head
   observed when backfill began, in batches
2. Live - polls the head, verifies the block at the checkpoint is still
   canonical, then processes the new blocks
3. Rolling back - on a hash mismatch, rewinds to the newest recorded block
   that is still canonical and processes forward again
4. Error - decode failures, reorgs deeper than the recorded hashes,
   repeatedly exhausted fetches and unexpected failures halt the worker

A range is committed only after it has been fully fetched and decoded, in
one transaction with its checkpoint, so stopping the worker at any await
never leaves partial data behind.
"""

from contextlib import suppress

import asyncio

from rich.progress import Progress

from swap_indexer.data.fetcher import ChainLogFetcher
from swap_indexer.data.swaps.decoder import SWAP_TOPIC, SwapDecoder
from swap_indexer.data.swaps.store import SwapStore
from swap_indexer.data.sync.models import SyncCheckpoint, SyncState, SyncStatus
from swap_indexer.helpers.config import ContractConfig, IndexerConfig
from swap_indexer.helpers.exceptions import (
    DecodeError,
    FetchError,
    ReorgTooDeepError,
)
from swap_indexer.helpers.logging import get_logger
from swap_indexer.helpers.progress import TaskID, describe_range


logger = get_logger(__name__)


class SyncDriver:
    """Orchestrates fetcher, decoder and store for a single pair."""

    def __init__(
        self,
        contract: ContractConfig,
        config: IndexerConfig,
        fetcher: ChainLogFetcher,
        store: SwapStore,
        *,
        progress: Progress | None = None,
    ) -> None:
        """Initialize the driver.

        Args:
            contract: Pair to index
            config: Static indexer configuration
            fetcher: Log fetcher, may be shared between drivers
            store: Event and checkpoint store, may be shared between drivers
            progress: Optional rich progress display for backfills
        """
        self.contract = contract
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.decoder = SwapDecoder(contract.chain_id)
        self.progress = progress

        self.state = SyncState.BACKFILLING
        self.checkpoint: SyncCheckpoint | None = None
        self.head_block: int | None = None
        self.backfill_target: int | None = None
        self.error: str | None = None
        self.consecutive_fetch_failures = 0

        self._progress_task: TaskID | None = None
        self._shutdown_event = asyncio.Event()

    @property
    def name(self) -> str:
        """Pair label used in logs."""
        return f"{self.contract.chain_id}:{self.contract.address}"

    @property
    def should_shutdown(self) -> bool:
        """Whether shutdown was requested."""
        return self._shutdown_event.is_set()

    @property
    def last_synced_block(self) -> int | None:
        """Highest committed block, None before start."""
        return self.checkpoint.last_synced_block if self.checkpoint else None

    @property
    def finished(self) -> bool:
        """Whether the configured end block has been committed."""
        return (
            self.contract.end_block is not None
            and self.checkpoint is not None
            and self.checkpoint.last_synced_block >= self.contract.end_block
        )

    def status(self) -> SyncStatus:
        """Current state, checkpoint, observed head and error detail."""
        return SyncStatus(
            chain_id=self.contract.chain_id,
            address=self.contract.address,
            state=self.state,
            last_synced_block=self.last_synced_block,
            head_block=self.head_block,
            error=self.error,
        )

    def shutdown(self) -> None:
        """Request a cooperative stop at the next safe boundary."""
        logger.info("Stopping sync worker %s", self.name)
        self._shutdown_event.set()

    def _cap(self, block_number: int) -> int:
        if self.contract.end_block is not None:
            return min(block_number, self.contract.end_block)
        return block_number

    async def _wait(self, seconds: float) -> None:
        """Sleep without blocking other workers, waking early on shutdown."""
        with suppress(TimeoutError):
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)

    async def _set_state(self, state: SyncState) -> None:
        self.state = state
        await self.store.set_status(
            self.contract.chain_id, self.contract.address, state, self.error
        )

    def _start_progress(self) -> None:
        if self.progress is None or self.checkpoint is None:
            return
        if self.backfill_target is None:
            return
        total = max(self.backfill_target - self.checkpoint.last_synced_block, 0)
        self._progress_task = self.progress.add_task(
            f"Backfilling {self.name}", total=total
        )

    def _advance_progress(self, from_block: int, to_block: int) -> None:
        if self.progress is None or self._progress_task is None:
            return
        self.progress.update(
            self._progress_task,
            advance=to_block - from_block + 1,
            description=describe_range(
                f"Backfilling {self.name}", from_block, to_block
            ),
        )

    async def start(self) -> None:
        """Load or create the checkpoint and choose the initial state.

        Events above the checkpoint are removed first: the checkpoint is
        authoritative and everything after it is processed again.

        Raises:
            FetchError: If the chain head cannot be read
        """
        checkpoint = await self.store.ensure_checkpoint(
            self.contract.chain_id, self.contract.address, self.contract.start_block
        )
        await self.store.reconcile(checkpoint)

        if checkpoint.status is SyncState.ERROR:
            logger.warning(
                "Resuming %s after previous error: %s", self.name, checkpoint.error
            )

        head = await self.fetcher.get_head()
        self.head_block = head
        self.checkpoint = checkpoint
        self.backfill_target = self._cap(head)
        self.error = None

        if checkpoint.last_synced_block < self.backfill_target:
            logger.info(
                "Backfilling %s from block %s to %s",
                self.name,
                checkpoint.last_synced_block + 1,
                self.backfill_target,
            )
            await self._set_state(SyncState.BACKFILLING)
            self._start_progress()
        else:
            logger.info(
                "%s is synced to block %s, going live",
                self.name,
                checkpoint.last_synced_block,
            )
            await self._set_state(SyncState.LIVE)

    async def process_range(self, from_block: int, to_block: int) -> int:
        """Fetch, decode and commit one block range.

        Args:
            from_block: First block, must be last_synced_block + 1
            to_block: Last block, inclusive

        Returns:
            Number of new events stored

        Raises:
            FetchError: If logs or headers cannot be fetched consistently
            DecodeError: If a log does not decode as a Swap event
        """
        if self.checkpoint is None:
            msg = "driver has not been started"
            raise RuntimeError(msg)

        logs = await self.fetcher.fetch_logs(
            self.contract.address, SWAP_TOPIC, from_block, to_block
        )
        headers = await self.fetcher.get_block_headers(
            [log.block_number for log in logs] + [to_block]
        )

        for log in logs:
            if headers[log.block_number].hash != log.block_hash:
                msg = (
                    f"block {log.block_number} changed while fetching "
                    f"{from_block}-{to_block}"
                )
                raise FetchError(msg, from_block, to_block)

        events = self.decoder.decode_many(
            logs, {number: header.timestamp for number, header in headers.items()}
        )

        checkpoint = self.checkpoint.model_copy(
            update={
                "last_synced_block": to_block,
                "last_synced_hash": headers[to_block].hash,
                "status": self.state,
                "error": None,
            }
        )
        inserted = await self.store.commit_range(checkpoint, events)
        self.checkpoint = checkpoint
        self.error = None

        logger.info(
            "Committed %s blocks %s-%s: %s events (%s new)",
            self.name,
            from_block,
            to_block,
            len(events),
            inserted,
        )
        return inserted

    async def backfill_step(self) -> None:
        """Process the next backfill batch, going live once caught up."""
        if self.checkpoint is None or self.backfill_target is None:
            msg = "driver has not been started"
            raise RuntimeError(msg)

        from_block = self.checkpoint.last_synced_block + 1
        to_block = min(
            from_block + self.config.backfill_batch_blocks - 1, self.backfill_target
        )
        if from_block <= to_block:
            await self.process_range(from_block, to_block)
            self._advance_progress(from_block, to_block)

        if self.checkpoint.last_synced_block >= self.backfill_target:
            logger.info(
                "Backfill of %s complete at block %s",
                self.name,
                self.checkpoint.last_synced_block,
            )
            await self._set_state(SyncState.LIVE)

    async def _find_common_ancestor(self) -> tuple[int, str | None]:
        """Newest recorded block that is still canonical.

        Without any recorded hash below the checkpoint, rewinds a full reorg
        window (never below the start block).

        Raises:
            ReorgTooDeepError: If every recorded hash has been replaced
        """
        if self.checkpoint is None:
            msg = "driver has not been started"
            raise RuntimeError(msg)

        last = self.checkpoint.last_synced_block
        recorded = [
            block
            for block in await self.store.recent_blocks(
                self.contract.chain_id, self.contract.address
            )
            if block.number < last
        ]

        if recorded:
            canonical = await self.fetcher.get_block_headers(
                [block.number for block in recorded]
            )
            for block in recorded:
                if canonical[block.number].hash == block.hash:
                    return block.number, block.hash

            oldest = recorded[-1].number
            msg = (
                f"reorg reaches below block {oldest}: none of the "
                f"{len(recorded)} recorded block hashes is canonical"
            )
            raise ReorgTooDeepError(msg, oldest)

        fallback = max(self.contract.start_block - 1, last - self.config.reorg_window)
        if fallback < self.contract.start_block:
            logger.warning(
                "No recorded ancestor of %s, rewinding to the start block", self.name
            )
            return fallback, None
        logger.error(
            "No recorded ancestor of %s, rewinding %s blocks to unverified block %s",
            self.name,
            last - fallback,
            fallback,
        )
        header = await self.fetcher.get_block_header(fallback)
        return fallback, header.hash

    async def roll_back(self) -> int:
        """Rewind to the last-known-good ancestor after a reorg.

        Returns:
            Number of events deleted
        """
        if self.checkpoint is None:
            msg = "driver has not been started"
            raise RuntimeError(msg)

        previous_state = self.state
        self.state = SyncState.ROLLING_BACK
        try:
            ancestor, ancestor_hash = await self._find_common_ancestor()
        except (FetchError, ReorgTooDeepError):
            self.state = previous_state
            raise

        checkpoint = self.checkpoint.model_copy(
            update={
                "last_synced_block": ancestor,
                "last_synced_hash": ancestor_hash,
                "status": SyncState.LIVE,
                "error": None,
            }
        )
        deleted = await self.store.rollback_to(checkpoint)
        logger.warning(
            "Rolled back %s from block %s to %s, deleted %s events",
            self.name,
            self.checkpoint.last_synced_block,
            ancestor,
            deleted,
        )
        self.checkpoint = checkpoint
        self.state = SyncState.LIVE
        return deleted

    async def verify_canonical(self) -> bool:
        """Check the recorded hash at the checkpoint against the chain.

        Returns:
            True if the checkpoint is canonical (or nothing is recorded yet),
            False if a reorg was detected and rolled back
        """
        if self.checkpoint is None or self.checkpoint.last_synced_hash is None:
            return True

        header = await self.fetcher.get_block_header(
            self.checkpoint.last_synced_block
        )
        if header.hash == self.checkpoint.last_synced_hash:
            return True

        logger.warning(
            "Reorg detected for %s at block %s: recorded %s, canonical %s",
            self.name,
            self.checkpoint.last_synced_block,
            self.checkpoint.last_synced_hash,
            header.hash,
        )
        await self.roll_back()
        return False

    async def live_step(self) -> None:
        """Poll the head once and process any new blocks."""
        if self.checkpoint is None:
            msg = "driver has not been started"
            raise RuntimeError(msg)

        head = await self.fetcher.get_head()
        self.head_block = head
        target = self._cap(head)

        await self.verify_canonical()

        last = self.checkpoint.last_synced_block
        if target <= last:
            return

        if target - last > self.config.backfill_batch_blocks:
            logger.info(
                "%s is %s blocks behind, backfilling to %s",
                self.name,
                target - last,
                target,
            )
            self.backfill_target = target
            await self._set_state(SyncState.BACKFILLING)
            self._start_progress()
            return

        await self.process_range(last + 1, target)

    async def _handle_fetch_error(self, error: FetchError) -> None:
        self.consecutive_fetch_failures += 1
        self.error = str(error)

        if self.consecutive_fetch_failures >= self.config.max_fetch_failures:
            await self._halt(
                error, f"{self.consecutive_fetch_failures} failed fetches"
            )
            return

        logger.warning(
            "Fetch failed for %s (%s/%s), retrying in %ss: %s",
            self.name,
            self.consecutive_fetch_failures,
            self.config.max_fetch_failures,
            self.config.poll_interval,
            error,
        )
        await self._wait(self.config.poll_interval)

    async def _halt(self, error: Exception, reason: str) -> None:
        self.error = str(error) or type(error).__name__
        logger.error("%s halted (%s): %s", self.name, reason, self.error)
        try:
            await self._set_state(SyncState.ERROR)
        except Exception:
            self.state = SyncState.ERROR
            logger.exception("Could not persist error state of %s", self.name)

    async def run(self) -> SyncStatus:
        """Run until shutdown, the end block, or the error state.

        Every failure ends in a returned status, never an exception.

        Returns:
            Final status of the worker
        """
        logger.info("Starting sync worker %s", self.name)

        while not self.should_shutdown and self.state is not SyncState.ERROR:
            try:
                if self.checkpoint is None:
                    await self.start()
                    continue

                if self.finished:
                    logger.info(
                        "%s reached end block %s", self.name, self.contract.end_block
                    )
                    break

                if self.state is SyncState.BACKFILLING:
                    await self.backfill_step()
                    self.consecutive_fetch_failures = 0
                else:
                    await self.live_step()
                    self.consecutive_fetch_failures = 0
                    if not self.finished:
                        await self._wait(self.config.poll_interval)
            except FetchError as e:
                await self._handle_fetch_error(e)
            except DecodeError as e:
                await self._halt(e, "undecodable log")
            except ReorgTooDeepError as e:
                await self._halt(e, "reorg deeper than the recorded hashes")
            except Exception as e:
                logger.exception("Sync worker %s failed unexpectedly", self.name)
                await self._halt(e, "unexpected error")

        logger.info(
            "Sync worker %s stopped in state %s at block %s",
            self.name,
            self.state,
            self.last_synced_block,
        )
        return self.status()


__all__ = ["SyncDriver"]
