"""Error taxonomy for the indexing pipeline."""

from typing import Any


# Substrings providers use when an eth_getLogs window is too wide
RANGE_TOO_LARGE_MARKERS = (
    "range is too large",
    "block range",
    "query returned more than",
    "exceeds max results",
    "response size exceeded",
    "too many results",
)


class IndexerError(Exception):
    """Base class for all indexer errors."""


class RPCError(IndexerError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, code: int | None, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error {code}: {message}")

    @classmethod
    def from_response(cls, error: Any) -> "RPCError":
        """Build from the `error` member of a JSON-RPC response."""
        if isinstance(error, dict):
            return cls(
                error.get("code"), str(error.get("message", "")), error.get("data")
            )
        return cls(None, str(error))

    @property
    def is_range_too_large(self) -> bool:
        """Whether the node rejected the request because the range was too wide.

        -32005 is shared between "too many results" and rate limiting, so a
        message mentioning a rate is never treated as a range problem.
        """
        message = self.message.lower()
        if "rate" in message:
            return False
        return self.code == -32005 or any(
            marker in message for marker in RANGE_TOO_LARGE_MARKERS
        )


class FetchError(IndexerError):
    """Retryable failure to fetch a block range from the chain."""

    def __init__(
        self,
        message: str,
        from_block: int | None = None,
        to_block: int | None = None,
    ) -> None:
        self.from_block = from_block
        self.to_block = to_block
        super().__init__(message)


class DecodeError(IndexerError):
    """Raw log does not match the expected event layout. Not retryable."""

    def __init__(
        self,
        message: str,
        block_number: int | None = None,
        log_index: int | None = None,
    ) -> None:
        self.block_number = block_number
        self.log_index = log_index
        location = ""
        if block_number is not None:
            location = f" (block {block_number}, log {log_index})"
        super().__init__(f"{message}{location}")


class ReorgTooDeepError(IndexerError):
    """No recorded block hash is still canonical. Not retryable.

    Rows below the oldest recorded hash may belong to an orphaned fork, so
    the pair must be re-indexed rather than rewound blindly.
    """

    def __init__(self, message: str, oldest_recorded_block: int) -> None:
        self.oldest_recorded_block = oldest_recorded_block
        super().__init__(message)


class SchemaVersionError(IndexerError):
    """Database was created with a different table layout version."""

    def __init__(self, stored: int, expected: int) -> None:
        self.stored = stored
        self.expected = expected
        super().__init__(
            f"database schema version {stored} does not match {expected};"
            " migrate the database or point DATABASE_URL elsewhere"
        )


__all__ = [
    "RANGE_TOO_LARGE_MARKERS",
    "DecodeError",
    "FetchError",
    "IndexerError",
    "RPCError",
    "ReorgTooDeepError",
    "SchemaVersionError",
]
