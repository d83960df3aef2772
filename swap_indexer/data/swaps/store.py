"""Idempotent persistence of swap events and sync checkpoints.

Every multi-row operation runs in a single transaction: a range of events is
committed together with the checkpoint that covers it, and a reorg rollback
deletes events and rewinds the checkpoint together. A crash or cancellation
mid-operation leaves the previous state intact.
"""

from datetime import UTC, datetime

from typing import Any

from sqlalchemy import ColumnElement, and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from swap_indexer.data.swaps.db import SwapEventDB
from swap_indexer.data.swaps.models import INT256_MAX, INT256_MIN, SwapEvent
from swap_indexer.data.sync.db import SyncBlockDB, SyncCheckpointDB
from swap_indexer.data.sync.models import SyncBlock, SyncCheckpoint, SyncState
from swap_indexer.helpers.constants import (
    DEFAULT_QUERY_LIMIT,
    MAX_QUERY_LIMIT,
    POSTGRES_PARAM_LIMIT,
    REORG_WINDOW,
    SQLITE_PARAM_LIMIT,
)
from swap_indexer.helpers.db import insert_ignore, upsert
from swap_indexer.helpers.logging import get_logger
from swap_indexer.helpers.parsers import normalize_address


logger = get_logger(__name__)

FILTERABLE_COLUMNS = {
    "sender": SwapEventDB.sender,
    "recipient": SwapEventDB.recipient,
    "amount0": SwapEventDB.amount0,
    "amount1": SwapEventDB.amount1,
    "block_number": SwapEventDB.block_number,
    "block_timestamp": SwapEventDB.block_timestamp,
}

ORDERABLE_COLUMNS = {
    column.key: column for column in SwapEventDB.__table__.columns
}

FILTER_OPERATORS = ("not", "in", "gt", "gte", "lt", "lte")

ADDRESS_COLUMNS = {"sender", "recipient"}

# Inclusive bounds of the integer filter columns, int256 and BIGINT
INT256_BOUNDS = (INT256_MIN, INT256_MAX)
INT64_BOUNDS = (-(2**63), 2**63 - 1)
FILTER_BOUNDS = {
    "amount0": INT256_BOUNDS,
    "amount1": INT256_BOUNDS,
    "block_number": INT64_BOUNDS,
    "block_timestamp": INT64_BOUNDS,
}

EVENT_COLUMN_COUNT = len(SwapEventDB.__table__.columns)

# Rows per INSERT so a batch never exceeds the bind parameter limit
INSERT_CHUNK_SIZE = (
    min(POSTGRES_PARAM_LIMIT, SQLITE_PARAM_LIMIT) // EVENT_COLUMN_COUNT
)


def _split_filter_key(key: str) -> tuple[str, str | None]:
    for operator in FILTER_OPERATORS:
        suffix = f"_{operator}"
        if key.endswith(suffix) and key[: -len(suffix)] in FILTERABLE_COLUMNS:
            return key[: -len(suffix)], operator
    if key in FILTERABLE_COLUMNS:
        return key, None
    msg = f"Unknown filter: {key}"
    raise ValueError(msg)


def _coerce_filter_value(column: str, value: Any) -> Any:
    if column in ADDRESS_COLUMNS:
        return normalize_address(value)
    if isinstance(value, bool) or not isinstance(value, int | str):
        msg = f"Filter value for {column} must be an integer, got {value!r}"
        raise ValueError(msg)
    number = int(value)
    low, high = FILTER_BOUNDS[column]
    if not low <= number <= high:
        msg = f"Filter value for {column} is out of range: {number}"
        raise ValueError(msg)
    return number


def build_conditions(where: dict[str, Any]) -> list[ColumnElement[bool]]:
    """Translate a filter mapping into SQL conditions.

    Keys are a column name for equality, or a column name with one of the
    suffixes ``_not``, ``_in``, ``_gt``, ``_gte``, ``_lt``, ``_lte``.

    Raises:
        ValueError: On unknown keys or values of the wrong type

    Example:
        ```python
        build_conditions({"amount1_gt": 1_000_000_000, "sender": "0xabc..."})
        ```
    """
    conditions: list[ColumnElement[bool]] = []
    for key, value in where.items():
        name, operator = _split_filter_key(key)
        column = FILTERABLE_COLUMNS[name]

        if operator == "in":
            if isinstance(value, str | bytes) or not hasattr(value, "__iter__"):
                msg = f"{key} expects a list of values"
                raise ValueError(msg)
            conditions.append(
                column.in_([_coerce_filter_value(name, v) for v in value])
            )
            continue

        coerced = _coerce_filter_value(name, value)
        if operator is None:
            conditions.append(column == coerced)
        elif operator == "not":
            conditions.append(column != coerced)
        elif operator == "gt":
            conditions.append(column > coerced)
        elif operator == "gte":
            conditions.append(column >= coerced)
        elif operator == "lt":
            conditions.append(column < coerced)
        else:
            conditions.append(column <= coerced)
    return conditions


def _pair_condition(chain_id: int, address: str) -> ColumnElement[bool]:
    return and_(
        SwapEventDB.chain_id == chain_id,
        SwapEventDB.address == address.lower(),
    )


class SwapStore:
    """Swap events table plus the checkpoint tables of every tracked pair."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        reorg_window: int = REORG_WINDOW,
    ) -> None:
        self.session_factory = session_factory
        self.reorg_window = reorg_window

    # Events

    async def _insert_events(
        self, session: AsyncSession, events: list[SwapEvent]
    ) -> int:
        if not events:
            return 0

        created_at = datetime.now(UTC)
        rows = [
            event.model_dump() | {"created_at": event.created_at or created_at}
            for event in events
        ]

        inserted = 0
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = rows[start : start + INSERT_CHUNK_SIZE]
            result = await session.execute(insert_ignore(session, SwapEventDB, chunk))
            inserted += max(result.rowcount or 0, 0)
        return inserted

    async def upsert(self, event: SwapEvent) -> int:
        """Insert an event unless its id is already stored.

        Returns:
            Number of rows inserted (0 for a duplicate)
        """
        return await self.upsert_many([event])

    async def upsert_many(self, events: list[SwapEvent]) -> int:
        """Insert a batch of events atomically, skipping ids already stored.

        Existing rows are never overwritten: an id is derived from immutable
        chain data, so a duplicate carries the same values.
        """
        async with self.session_factory() as session, session.begin():
            return await self._insert_events(session, events)

    async def delete_from(
        self,
        block_number: int,
        *,
        chain_id: int | None = None,
        address: str | None = None,
    ) -> int:
        """Delete events with block_number >= the given block.

        Args:
            block_number: First block to delete
            chain_id: Restrict to a chain (requires address)
            address: Restrict to a pool (requires chain_id)

        Returns:
            Number of rows deleted
        """
        stmt = delete(SwapEventDB).where(SwapEventDB.block_number >= block_number)
        if chain_id is not None or address is not None:
            if chain_id is None or address is None:
                msg = "chain_id and address must be given together"
                raise ValueError(msg)
            stmt = stmt.where(_pair_condition(chain_id, address))

        async with self.session_factory() as session, session.begin():
            result = await session.execute(stmt)
            return result.rowcount or 0

    async def query(
        self,
        where: dict[str, Any] | None = None,
        order_by: str = "block_number",
        order_direction: str = "asc",
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> list[SwapEvent]:
        """Query stored events.

        Args:
            where: Filter mapping, see build_conditions
            order_by: Any column of the events table
            order_direction: "asc" or "desc"
            limit: Maximum rows returned, at most MAX_QUERY_LIMIT

        Returns:
            Matching events in the requested order. Ties are broken by
            (block_number, log_index) in the same direction.

        Raises:
            ValueError: On unknown filters, columns, directions or a bad limit
        """
        if order_by not in ORDERABLE_COLUMNS:
            msg = f"Unknown order column: {order_by}"
            raise ValueError(msg)
        if order_direction not in {"asc", "desc"}:
            msg = f"Invalid order direction: {order_direction}"
            raise ValueError(msg)
        if not 1 <= limit <= MAX_QUERY_LIMIT:
            msg = f"limit must be between 1 and {MAX_QUERY_LIMIT}"
            raise ValueError(msg)

        order_columns = [ORDERABLE_COLUMNS[order_by]]
        for tie_breaker in ("block_number", "log_index", "id"):
            if tie_breaker != order_by:
                order_columns.append(ORDERABLE_COLUMNS[tie_breaker])

        stmt = (
            select(SwapEventDB)
            .where(*build_conditions(where or {}))
            .order_by(
                *(
                    column.desc() if order_direction == "desc" else column.asc()
                    for column in order_columns
                )
            )
            .limit(limit)
        )

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                SwapEvent.model_validate(row, from_attributes=True)
                for row in result.scalars()
            ]

    async def get(self, event_id: str) -> SwapEvent | None:
        """Fetch a single event by id."""
        async with self.session_factory() as session:
            row = await session.get(SwapEventDB, event_id.lower())
            return SwapEvent.model_validate(row, from_attributes=True) if row else None

    async def count(
        self, chain_id: int | None = None, address: str | None = None
    ) -> int:
        """Number of stored events, optionally for one pair."""
        stmt = select(func.count()).select_from(SwapEventDB)
        if chain_id is not None and address is not None:
            stmt = stmt.where(_pair_condition(chain_id, address))
        async with self.session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    # Checkpoints

    async def get_checkpoint(
        self, chain_id: int, address: str
    ) -> SyncCheckpoint | None:
        """Current checkpoint of a pair, or None before its first run."""
        async with self.session_factory() as session:
            row = await session.get(SyncCheckpointDB, (chain_id, address.lower()))
            if row is None:
                return None
            return SyncCheckpoint(
                chain_id=row.chain_id,
                address=row.address,
                last_synced_block=row.last_synced_block,
                last_synced_hash=row.last_synced_hash,
                status=SyncState(row.status),
                error=row.error,
            )

    async def ensure_checkpoint(
        self, chain_id: int, address: str, start_block: int
    ) -> SyncCheckpoint:
        """Return the pair's checkpoint, creating it at start_block - 1."""
        address = address.lower()
        row = {
            "chain_id": chain_id,
            "address": address,
            "last_synced_block": start_block - 1,
            "last_synced_hash": None,
            "status": SyncState.BACKFILLING.value,
            "error": None,
            "updated_at": datetime.now(UTC),
        }
        async with self.session_factory() as session, session.begin():
            await session.execute(insert_ignore(session, SyncCheckpointDB, [row]))

        checkpoint = await self.get_checkpoint(chain_id, address)
        if checkpoint is None:
            msg = f"checkpoint for {chain_id}:{address} could not be created"
            raise RuntimeError(msg)
        return checkpoint

    async def _write_checkpoint(
        self, session: AsyncSession, checkpoint: SyncCheckpoint
    ) -> None:
        row = checkpoint.model_dump() | {
            "status": checkpoint.status.value,
            "updated_at": datetime.now(UTC),
        }
        await session.execute(
            upsert(session, SyncCheckpointDB, row, ["chain_id", "address"])
        )

    async def commit_range(
        self, checkpoint: SyncCheckpoint, events: list[SwapEvent]
    ) -> int:
        """Persist a processed block range and its checkpoint atomically.

        Args:
            checkpoint: Checkpoint after the range (last_synced_block is the
                range end, last_synced_hash its block hash)
            events: Decoded events of the range

        Returns:
            Number of events inserted
        """
        async with self.session_factory() as session, session.begin():
            inserted = await self._insert_events(session, events)
            await self._write_checkpoint(session, checkpoint)

            if checkpoint.last_synced_hash is not None:
                await session.execute(
                    upsert(
                        session,
                        SyncBlockDB,
                        {
                            "chain_id": checkpoint.chain_id,
                            "address": checkpoint.address,
                            "number": checkpoint.last_synced_block,
                            "hash": checkpoint.last_synced_hash,
                        },
                        ["chain_id", "address", "number"],
                    )
                )
            await session.execute(
                delete(SyncBlockDB).where(
                    SyncBlockDB.chain_id == checkpoint.chain_id,
                    SyncBlockDB.address == checkpoint.address,
                    SyncBlockDB.number
                    < checkpoint.last_synced_block - self.reorg_window,
                )
            )
        return inserted

    async def rollback_to(self, checkpoint: SyncCheckpoint) -> int:
        """Rewind a pair to an ancestor block atomically.

        Deletes the pair's events and recorded hashes above
        checkpoint.last_synced_block and stores the checkpoint.

        Returns:
            Number of events deleted
        """
        ancestor = checkpoint.last_synced_block
        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                delete(SwapEventDB).where(
                    _pair_condition(checkpoint.chain_id, checkpoint.address),
                    SwapEventDB.block_number > ancestor,
                )
            )
            await session.execute(
                delete(SyncBlockDB).where(
                    SyncBlockDB.chain_id == checkpoint.chain_id,
                    SyncBlockDB.address == checkpoint.address,
                    SyncBlockDB.number > ancestor,
                )
            )
            await self._write_checkpoint(session, checkpoint)
            return result.rowcount or 0

    async def set_status(
        self,
        chain_id: int,
        address: str,
        status: SyncState,
        error: str | None = None,
    ) -> None:
        """Persist a status change without moving the checkpoint."""
        async with self.session_factory() as session, session.begin():
            await session.execute(
                update(SyncCheckpointDB)
                .where(
                    SyncCheckpointDB.chain_id == chain_id,
                    SyncCheckpointDB.address == address.lower(),
                )
                .values(
                    status=status.value, error=error, updated_at=datetime.now(UTC)
                )
            )

    async def recent_blocks(self, chain_id: int, address: str) -> list[SyncBlock]:
        """Recorded range-end hashes of a pair, newest first."""
        stmt = (
            select(SyncBlockDB)
            .where(
                SyncBlockDB.chain_id == chain_id,
                SyncBlockDB.address == address.lower(),
            )
            .order_by(SyncBlockDB.number.desc())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                SyncBlock(number=row.number, hash=row.hash)
                for row in result.scalars()
            ]

    async def reconcile(self, checkpoint: SyncCheckpoint) -> int:
        """Delete a pair's events above its checkpoint.

        The checkpoint is authoritative; anything above it is reprocessed.

        Returns:
            Number of events deleted
        """
        deleted = await self.delete_from(
            checkpoint.last_synced_block + 1,
            chain_id=checkpoint.chain_id,
            address=checkpoint.address,
        )
        if deleted:
            logger.warning(
                "Removed %s events above checkpoint %s for %s:%s",
                deleted,
                checkpoint.last_synced_block,
                checkpoint.chain_id,
                checkpoint.address,
            )
        return deleted


__all__ = [
    "FILTERABLE_COLUMNS",
    "SwapStore",
    "build_conditions",
]
