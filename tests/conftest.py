"""Pytest configuration and shared fixtures.

Store and driver tests run against a throwaway SQLite database (aiosqlite)
and an in-memory chain that answers JSON-RPC requests through pytest-httpx.
"""

from pathlib import Path

import pytest
import pytest_asyncio

from typing import Any

from collections.abc import AsyncGenerator, Callable

from pytest_httpx import HTTPXMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from swap_indexer.data.swaps.decoder import derive_event_id
from swap_indexer.data.swaps.models import SwapEvent
from swap_indexer.data.swaps.store import SwapStore
from swap_indexer.helpers.config import ContractConfig, IndexerConfig, RetryConfig
from swap_indexer.helpers.db import create_session_factory, create_tables

from fakes import (
    POOL,
    RECIPIENT,
    RPC_URL,
    SENDER,
    FakeChain,
    block_timestamp,
    fake_block_hash,
    fake_tx_hash,
)


@pytest.fixture
def chain(httpx_mock: HTTPXMock) -> FakeChain:
    """Fake chain at head 99 serving every HTTP request."""
    fake_chain = FakeChain(head=99)
    httpx_mock.add_callback(fake_chain.handle, is_reusable=True)
    return fake_chain


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Session factory bound to a fresh SQLite database with all tables."""
    engine, factory = create_session_factory(
        f"sqlite+aiosqlite:///{tmp_path / 'indexer.db'}"
    )
    await create_tables(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SwapStore:
    """Store with a small reorg window so pruning is observable."""
    return SwapStore(session_factory, reorg_window=16)


@pytest.fixture
def make_event() -> Callable[..., SwapEvent]:
    """Factory for decoded SwapEvents at arbitrary positions."""

    def factory(
        block_number: int = 18_000_000,
        log_index: int = 0,
        *,
        chain_id: int = 1,
        address: str = POOL,
        block_hash: str | None = None,
        transaction_index: int = 0,
        **fields: Any,
    ) -> SwapEvent:
        block_hash = block_hash or fake_block_hash(block_number)
        values: dict[str, Any] = {
            "id": derive_event_id(chain_id, block_hash, transaction_index, log_index),
            "chain_id": chain_id,
            "address": address,
            "sender": SENDER,
            "recipient": RECIPIENT,
            "amount0": -500_000_000_000_000_000,
            "amount1": 1_800_000_000,
            "sqrt_price_x96": 1_786_962_160_447_917_402_587_357_094_612_992,
            "liquidity": 12_345_678_901_234_567_890,
            "tick": 200_123,
            "block_number": block_number,
            "block_timestamp": block_timestamp(block_number),
            "transaction_hash": fake_tx_hash(block_number, transaction_index),
            "log_index": log_index,
        }
        values.update(fields)
        return SwapEvent(**values)

    return factory


@pytest.fixture
def make_config() -> Callable[..., IndexerConfig]:
    """Factory for fast-retrying configs against the fake chain."""

    def factory(
        start_block: int = 90,
        end_block: int | None = None,
        **overrides: Any,
    ) -> IndexerConfig:
        values: dict[str, Any] = {
            "rpc_url": RPC_URL,
            "contracts": (
                ContractConfig(
                    chain_id=1,
                    address=POOL,
                    start_block=start_block,
                    end_block=end_block,
                ),
            ),
            "poll_interval": 0.01,
            "max_block_range": 100,
            "backfill_batch_blocks": 5,
            "reorg_window": 16,
            "max_fetch_failures": 3,
            "rpc_timeout": 5.0,
            "retry": RetryConfig(max_retries=2, base_delay=0, max_delay=0),
        }
        values.update(overrides)
        return IndexerConfig(**values)

    return factory
