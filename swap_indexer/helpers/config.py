"""Configuration management and environment variable utilities."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from swap_indexer.helpers.constants import (
    BACKFILL_BATCH_BLOCKS,
    DEFAULT_CHAIN_ID,
    DEFAULT_CONTRACT_ADDRESS,
    DEFAULT_START_BLOCK,
    DEFAULT_TIMEOUT,
    MAX_BATCH_SIZE,
    MAX_BLOCK_RANGE,
    MAX_FETCH_FAILURES,
    MAX_RETRIES,
    POLL_INTERVAL,
    REORG_WINDOW,
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
)
from swap_indexer.helpers.parsers import normalize_address


# Load environment variables from .env file
load_dotenv()


def get_optional_env(key: str, default: str | None = None) -> str | None:
    """Get an optional environment variable with a default value.

    Example:
        ```python
        from swap_indexer.helpers.config import get_optional_env

        end_block = get_optional_env("END_BLOCK")
        ```
    """
    return os.getenv(key, default)


def get_int_env(key: str, default: int | None = None) -> int | None:
    """Get an integer environment variable.

    Args:
        key: Environment variable name
        default: Value returned when the variable is unset or empty

    Returns:
        Parsed integer or default

    Raises:
        ValueError: If the variable is set but is not an integer
    """
    value = os.getenv(key)
    if not value:
        return default
    try:
        return int(value.replace("_", ""))
    except ValueError:
        msg = f"{key} must be an integer, got {value!r}"
        raise ValueError(msg) from None


def get_float_env(key: str, default: float) -> float:
    """Get a float environment variable.

    Raises:
        ValueError: If the variable is set but is not a number
    """
    value = os.getenv(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        msg = f"{key} must be a number, got {value!r}"
        raise ValueError(msg) from None


def get_eth_rpc_url(rpc_url: str | None = None) -> str:
    """Get Ethereum RPC URL from parameter or environment.

    Args:
        rpc_url: Optional RPC URL to use directly

    Returns:
        Ethereum RPC URL

    Raises:
        ValueError: If RPC URL is not provided and ETH_RPC_URL env var is not set
    """
    if rpc_url:
        return rpc_url

    env_rpc_url = os.getenv("ETH_RPC_URL")
    if not env_rpc_url:
        msg = "ETH_RPC_URL must be provided or set in environment variables"
        raise ValueError(msg)

    return env_rpc_url


class RetryConfig(BaseModel):
    """Backoff policy for RPC calls."""

    max_retries: int = Field(default=MAX_RETRIES, ge=1)
    base_delay: float = Field(default=RETRY_BASE_DELAY, ge=0)
    max_delay: float = Field(default=RETRY_MAX_DELAY, ge=0)

    model_config = ConfigDict(frozen=True)


class ContractConfig(BaseModel):
    """A single tracked contract/network pair."""

    chain_id: int = Field(default=DEFAULT_CHAIN_ID, ge=1)
    address: str = Field(default=DEFAULT_CONTRACT_ADDRESS)
    start_block: int = Field(default=DEFAULT_START_BLOCK, ge=0)
    end_block: int | None = Field(default=None, ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("address")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        return normalize_address(value)

    @model_validator(mode="after")
    def _check_range(self) -> "ContractConfig":
        if self.end_block is not None and self.end_block < self.start_block:
            msg = (
                f"end_block ({self.end_block}) is before start_block "
                f"({self.start_block})"
            )
            raise ValueError(msg)
        return self


class IndexerConfig(BaseModel):
    """Static configuration handed to every sync worker at construction."""

    rpc_url: str
    contracts: tuple[ContractConfig, ...] = Field(min_length=1)
    poll_interval: float = Field(default=POLL_INTERVAL, gt=0)
    max_block_range: int = Field(default=MAX_BLOCK_RANGE, ge=1)
    max_batch_size: int = Field(default=MAX_BATCH_SIZE, ge=1)
    backfill_batch_blocks: int = Field(default=BACKFILL_BATCH_BLOCKS, ge=1)
    reorg_window: int = Field(default=REORG_WINDOW, ge=1)
    max_fetch_failures: int = Field(default=MAX_FETCH_FAILURES, ge=1)
    rpc_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    model_config = ConfigDict(frozen=True)


def load_config(rpc_url: str | None = None) -> IndexerConfig:
    """Build the indexer configuration from environment variables.

    Args:
        rpc_url: Optional RPC URL overriding ETH_RPC_URL

    Returns:
        Validated configuration for a single tracked contract

    Raises:
        ValueError: If a required variable is missing or a value is invalid

    Example:
        ```python
        from swap_indexer.helpers.config import load_config

        config = load_config()
        print(config.contracts[0].address)
        ```
    """
    contract = ContractConfig(
        chain_id=get_int_env("CHAIN_ID", DEFAULT_CHAIN_ID),
        address=get_optional_env("CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS)
        or DEFAULT_CONTRACT_ADDRESS,
        start_block=get_int_env("START_BLOCK", DEFAULT_START_BLOCK),
        end_block=get_int_env("END_BLOCK"),
    )

    return IndexerConfig(
        rpc_url=get_eth_rpc_url(rpc_url),
        contracts=(contract,),
        poll_interval=get_float_env("POLL_INTERVAL", POLL_INTERVAL),
        max_block_range=get_int_env("MAX_BLOCK_RANGE", MAX_BLOCK_RANGE),
        max_batch_size=get_int_env("MAX_BATCH_SIZE", MAX_BATCH_SIZE),
        backfill_batch_blocks=get_int_env(
            "BACKFILL_BATCH_BLOCKS", BACKFILL_BATCH_BLOCKS
        ),
        reorg_window=get_int_env("REORG_WINDOW", REORG_WINDOW),
        max_fetch_failures=get_int_env("MAX_FETCH_FAILURES", MAX_FETCH_FAILURES),
        rpc_timeout=get_float_env("RPC_TIMEOUT", DEFAULT_TIMEOUT),
        retry=RetryConfig(
            max_retries=get_int_env("MAX_RETRIES", MAX_RETRIES),
            base_delay=get_float_env("RETRY_BASE_DELAY", RETRY_BASE_DELAY),
            max_delay=get_float_env("RETRY_MAX_DELAY", RETRY_MAX_DELAY),
        ),
    )


__all__ = [
    "ContractConfig",
    "IndexerConfig",
    "RetryConfig",
    "get_eth_rpc_url",
    "get_float_env",
    "get_int_env",
    "get_optional_env",
    "load_config",
]
