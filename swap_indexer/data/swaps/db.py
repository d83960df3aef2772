"""Database models for swap events."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from swap_indexer.helpers.db import Base
from swap_indexer.helpers.db_types import BigNumeric


class SwapEventDB(Base):
    """Pool Swap event database model."""

    __tablename__ = "swap_events"
    __table_args__ = (
        Index("ix_swap_events_pair_block", "chain_id", "address", "block_number"),
    )

    id: Mapped[str] = mapped_column(String(66), primary_key=True)
    chain_id: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str] = mapped_column(String(42), nullable=False)
    sender: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    recipient: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    amount0: Mapped[int] = mapped_column(BigNumeric, nullable=False)
    amount1: Mapped[int] = mapped_column(BigNumeric, nullable=False)
    sqrt_price_x96: Mapped[int] = mapped_column(BigNumeric, nullable=False)
    liquidity: Mapped[int] = mapped_column(BigNumeric, nullable=False)
    tick: Mapped[int] = mapped_column(Integer, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


__all__ = ["SwapEventDB"]
