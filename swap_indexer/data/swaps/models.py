"""Pydantic models for pool Swap events."""

# Pydantic needs this at runtime to validate the datetime field
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


INT256_MIN = -(2**255)
INT256_MAX = 2**255 - 1
UINT160_MAX = 2**160 - 1
UINT128_MAX = 2**128 - 1
INT24_MIN = -(2**23)
INT24_MAX = 2**23 - 1
UINT64_MAX = 2**64 - 1


class SwapEvent(BaseModel):
    """Decoded Swap(address,address,int256,int256,uint160,uint128,int24) log."""

    id: str = Field(..., min_length=66, max_length=66)
    chain_id: int = Field(..., ge=1)
    address: str = Field(..., min_length=42, max_length=42)
    sender: str = Field(..., min_length=42, max_length=42)
    recipient: str = Field(..., min_length=42, max_length=42)
    amount0: int = Field(..., ge=INT256_MIN, le=INT256_MAX)
    amount1: int = Field(..., ge=INT256_MIN, le=INT256_MAX)
    sqrt_price_x96: int = Field(..., ge=0, le=UINT160_MAX)
    liquidity: int = Field(..., ge=0, le=UINT128_MAX)
    tick: int = Field(..., ge=INT24_MIN, le=INT24_MAX)
    block_number: int = Field(..., ge=0, le=UINT64_MAX)
    block_timestamp: int = Field(..., ge=0, le=UINT64_MAX)
    transaction_hash: str = Field(..., min_length=66, max_length=66)
    log_index: int = Field(..., ge=0)
    created_at: datetime | None = None

    model_config = ConfigDict(frozen=True)


__all__ = ["SwapEvent"]
