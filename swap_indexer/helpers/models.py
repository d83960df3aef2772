"""Common Pydantic models for chain data returned by JSON-RPC."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from swap_indexer.helpers.parsers import parse_hex_int


class BlockHeader(BaseModel):
    """Subset of an eth_getBlockByNumber result needed for indexing."""

    number: int = Field(..., description="Block number")
    hash: str = Field(..., description="Block hash")
    parent_hash: str = Field(..., description="Parent block hash", alias="parentHash")
    timestamp: int = Field(..., description="Block timestamp in seconds")

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    @field_validator("number", "timestamp", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> int:
        return parse_hex_int(value)

    @field_validator("hash", "parent_hash")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()


class RawLog(BaseModel):
    """A log entry as returned by eth_getLogs."""

    address: str
    topics: list[str]
    data: str
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    transaction_hash: str = Field(..., alias="transactionHash")
    transaction_index: int = Field(..., alias="transactionIndex")
    log_index: int = Field(..., alias="logIndex")
    removed: bool = False

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    @field_validator("block_number", "transaction_index", "log_index", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> int:
        return parse_hex_int(value)

    @field_validator("address", "block_hash", "transaction_hash", "data")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()

    @field_validator("topics")
    @classmethod
    def _lower_topics(cls, value: list[str]) -> list[str]:
        return [topic.lower() for topic in value]

    @property
    def position(self) -> tuple[int, int]:
        """Sort key within the chain."""
        return self.block_number, self.log_index


__all__ = [
    "BlockHeader",
    "RawLog",
]
