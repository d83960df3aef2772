"""Common configuration constants used across the indexer."""

# Tracked contract defaults (mainnet USDC/WETH 0.05% pool)
DEFAULT_CHAIN_ID = 1
"""Ethereum mainnet chain id"""

DEFAULT_CONTRACT_ADDRESS = "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"
"""Pool whose Swap events are indexed by default"""

DEFAULT_START_BLOCK = 12_376_729
"""Pool deployment block"""

# Block range constants
MAX_BLOCK_RANGE = 2_000
"""Largest block span requested in a single eth_getLogs call"""

BACKFILL_BATCH_BLOCKS = 10_000
"""Blocks committed per backfill step"""

MAX_BATCH_SIZE = 100
"""Largest number of calls sent in one JSON-RPC batch request"""

REORG_WINDOW = 128
"""Number of committed block hashes kept for reorg ancestor search"""

# HTTP and Network Constants
DEFAULT_TIMEOUT = 30.0
"""Default HTTP request timeout in seconds"""

POLL_INTERVAL = 12.0
"""Seconds between chain head polls in live mode (one mainnet slot)"""

# Retry Configuration
MAX_RETRIES = 5
"""Default maximum number of retry attempts"""

RETRY_BASE_DELAY = 1.0
"""Base delay for exponential backoff in seconds"""

RETRY_MAX_DELAY = 60.0
"""Maximum delay between retries in seconds"""

MAX_FETCH_FAILURES = 5
"""Consecutive exhausted fetches before a worker enters the error state"""

# HTTP Connection Pooling
MAX_KEEPALIVE_CONNECTIONS = 5
"""Maximum number of keepalive connections in pool"""

MAX_CONNECTIONS = 10
"""Maximum total number of connections"""

# Database Limits
POSTGRES_PARAM_LIMIT = 65_535
"""PostgreSQL's parameter limit for prepared statements"""

SQLITE_PARAM_LIMIT = 32_766
"""SQLite's default host parameter limit"""

# Query limits
DEFAULT_QUERY_LIMIT = 100
"""Rows returned by a query when no limit is given"""

MAX_QUERY_LIMIT = 1_000
"""Upper bound on rows returned by a single query"""


__all__ = [
    "BACKFILL_BATCH_BLOCKS",
    "DEFAULT_CHAIN_ID",
    "DEFAULT_CONTRACT_ADDRESS",
    "DEFAULT_QUERY_LIMIT",
    "DEFAULT_START_BLOCK",
    "DEFAULT_TIMEOUT",
    "MAX_BATCH_SIZE",
    "MAX_BLOCK_RANGE",
    "MAX_CONNECTIONS",
    "MAX_FETCH_FAILURES",
    "MAX_KEEPALIVE_CONNECTIONS",
    "MAX_QUERY_LIMIT",
    "MAX_RETRIES",
    "POLL_INTERVAL",
    "POSTGRES_PARAM_LIMIT",
    "REORG_WINDOW",
    "RETRY_BASE_DELAY",
    "RETRY_MAX_DELAY",
    "SQLITE_PARAM_LIMIT",
]
