"""Pydantic models for sync progress."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SyncState(StrEnum):
    """States of a sync worker. Only the first three are persisted."""

    BACKFILLING = "backfilling"
    LIVE = "live"
    ERROR = "error"
    ROLLING_BACK = "rolling_back"


class SyncCheckpoint(BaseModel):
    """Durable progress of one tracked contract/network pair."""

    chain_id: int
    address: str
    last_synced_block: int
    last_synced_hash: str | None = None
    status: SyncState = SyncState.BACKFILLING
    error: str | None = None

    model_config = ConfigDict(frozen=True)


class SyncBlock(BaseModel):
    """Hash of a committed range end, kept for reorg ancestor search."""

    number: int
    hash: str

    model_config = ConfigDict(frozen=True)


class SyncStatus(BaseModel):
    """User-visible status of a sync worker."""

    chain_id: int
    address: str
    state: SyncState
    last_synced_block: int | None
    head_block: int | None = None
    error: str | None = None


__all__ = [
    "SyncBlock",
    "SyncCheckpoint",
    "SyncState",
    "SyncStatus",
]
