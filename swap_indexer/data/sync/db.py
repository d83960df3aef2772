"""Database models for sync checkpoints."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from swap_indexer.helpers.db import Base


class SyncCheckpointDB(Base):
    """Sync checkpoints - one row per tracked contract/network pair."""

    __tablename__ = "sync_checkpoints"

    chain_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    last_synced_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_synced_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


class SyncBlockDB(Base):
    """Recently committed block hashes per pair (bounded reorg window)."""

    __tablename__ = "sync_blocks"

    chain_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    number: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    hash: Mapped[str] = mapped_column(String(66), nullable=False)


__all__ = ["SyncBlockDB", "SyncCheckpointDB"]
