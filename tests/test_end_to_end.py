"""End-to-end runs of the indexer against a fake chain and SQLite."""

from pathlib import Path
import io

import pytest

from collections.abc import Callable

from rich.console import Console
from sqlalchemy.exc import OperationalError

from swap_indexer.data.swaps.decoder import SWAP_TOPIC
from swap_indexer.data.swaps.models import SwapEvent
from swap_indexer.data.swaps.store import SwapStore
from swap_indexer.data.sync.models import SyncState, SyncStatus
from swap_indexer.helpers.config import ContractConfig, IndexerConfig
from swap_indexer.helpers.db import create_session_factory
from swap_indexer.live import IndexerRunner
from swap_indexer.sync.driver import SyncDriver

from fakes import OTHER_POOL, POOL, FakeChain


pytestmark = pytest.mark.httpx_mock(assert_all_responses_were_requested=False)

BLOCK = 18_000_000


async def stored_events(database_url: str) -> list[SwapEvent]:
    engine, session_factory = create_session_factory(database_url)
    try:
        return await SwapStore(session_factory).query()
    finally:
        await engine.dispose()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'e2e.db'}"


@pytest.fixture
def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=200)


@pytest.mark.asyncio
async def test_indexes_single_swap(
    chain: FakeChain,
    make_config: Callable[..., IndexerConfig],
    database_url: str,
    quiet_console: Console,
) -> None:
    """Test one swap at block 18000000 stored once with a stable id."""
    chain.head = BLOCK + 2
    chain.add_swap(BLOCK, amount0=-500_000_000_000_000_000, amount1=1_800_000_000)
    config = make_config(start_block=BLOCK - 9, end_block=BLOCK)

    statuses = await IndexerRunner(config, database_url, console=quiet_console).run()

    assert len(statuses) == 1
    assert statuses[0].state is SyncState.LIVE
    assert statuses[0].last_synced_block == BLOCK
    (event,) = await stored_events(database_url)
    assert event.block_number == BLOCK
    assert event.amount0 == -500_000_000_000_000_000
    assert event.amount1 == 1_800_000_000
    assert event.address == POOL

    # Index the same range again from scratch
    rerun_url = database_url.replace("e2e.db", "rerun.db")
    await IndexerRunner(config, rerun_url, console=quiet_console).run()
    (rerun_event,) = await stored_events(rerun_url)
    assert rerun_event.id == event.id


@pytest.mark.asyncio
async def test_restart_does_not_duplicate(
    chain: FakeChain,
    make_config: Callable[..., IndexerConfig],
    database_url: str,
    quiet_console: Console,
) -> None:
    """Test that a second run over a finished range adds nothing."""
    chain.head = BLOCK
    chain.add_swap(BLOCK)
    config = make_config(start_block=BLOCK - 4, end_block=BLOCK)

    await IndexerRunner(config, database_url, console=quiet_console).run()
    await IndexerRunner(config, database_url, console=quiet_console).run()

    assert len(await stored_events(database_url)) == 1


@pytest.mark.asyncio
async def test_failing_pair_does_not_stall_others(
    chain: FakeChain,
    make_config: Callable[..., IndexerConfig],
    database_url: str,
    quiet_console: Console,
) -> None:
    """Test that an undecodable log only halts its own pair."""
    chain.add_swap(95)
    chain.add_raw_log(93, [SWAP_TOPIC], "0x", address=OTHER_POOL)
    config = make_config(
        contracts=(
            ContractConfig(chain_id=1, address=POOL, start_block=90, end_block=99),
            ContractConfig(
                chain_id=1, address=OTHER_POOL, start_block=90, end_block=99
            ),
        )
    )
    runner = IndexerRunner(config, database_url, console=quiet_console)

    statuses = await runner.run()
    runner.print_status(statuses)

    by_address = {status.address: status for status in statuses}
    assert by_address[POOL].state is SyncState.LIVE
    assert by_address[POOL].last_synced_block == 99
    assert by_address[OTHER_POOL].state is SyncState.ERROR
    assert by_address[OTHER_POOL].last_synced_block == 89
    assert [e.block_number for e in await stored_events(database_url)] == [95]

    output = quiet_console.file.getvalue()
    assert "Sync Status" in output
    assert "error" in output


@pytest.mark.asyncio
async def test_shutdown_before_run(
    chain: FakeChain,
    make_config: Callable[..., IndexerConfig],
    database_url: str,
    quiet_console: Console,
) -> None:
    """Test that a runner stopped early starts no workers."""
    runner = IndexerRunner(make_config(), database_url, console=quiet_console)
    runner.shutdown()

    assert await runner.run() == []
    assert chain.requests == []


@pytest.mark.asyncio
async def test_database_failure_reported_in_statuses(
    chain: FakeChain,
    make_config: Callable[..., IndexerConfig],
    database_url: str,
    quiet_console: Console,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test that a failing commit leaves an error status for the pair."""
    chain.add_swap(95)

    async def locked(*args: object) -> int:
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(SwapStore, "commit_range", locked)
    runner = IndexerRunner(make_config(), database_url, console=quiet_console)

    statuses = await runner.run()

    assert len(statuses) == 1
    assert statuses[0].state is SyncState.ERROR
    assert statuses[0].error is not None
    assert "database is locked" in statuses[0].error


@pytest.mark.asyncio
async def test_crashed_worker_reported_in_statuses(
    chain: FakeChain,
    make_config: Callable[..., IndexerConfig],
    database_url: str,
    quiet_console: Console,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test that a worker raising out of run still yields a status."""

    async def crash(self: SyncDriver) -> SyncStatus:
        raise RuntimeError("worker exploded")

    monkeypatch.setattr(SyncDriver, "run", crash)
    runner = IndexerRunner(make_config(), database_url, console=quiet_console)

    statuses = await runner.run()

    assert len(statuses) == 1
    assert statuses[0].address == POOL
    assert statuses[0].state is SyncState.ERROR
    assert statuses[0].error == "worker exploded"
