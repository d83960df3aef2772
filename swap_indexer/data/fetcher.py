"""Fetch raw event logs and block headers from a JSON-RPC endpoint."""

from typing import ParamSpec, TypeVar

from collections.abc import Awaitable, Callable

import httpx

from swap_indexer.helpers.config import RetryConfig
from swap_indexer.helpers.constants import MAX_BATCH_SIZE, MAX_BLOCK_RANGE
from swap_indexer.helpers.exceptions import FetchError, RPCError
from swap_indexer.helpers.http import retry_with_backoff
from swap_indexer.helpers.logging import get_logger
from swap_indexer.helpers.models import BlockHeader, RawLog
from swap_indexer.helpers.rpc import RPCClient


logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class RangeTooLargeError(Exception):
    """The node refused a getLogs window; the caller should bisect it."""


class ChainLogFetcher:
    """Retrieve logs for one address and topic over inclusive block ranges.

    Ranges are paged into windows of at most ``max_block_range`` blocks. A
    window the node reports as too large is bisected. Transient failures are
    retried with exponential backoff; once retries are exhausted a
    FetchError is raised and nothing from the range is returned.
    """

    def __init__(
        self,
        rpc_client: RPCClient,
        http_client: httpx.AsyncClient,
        *,
        max_block_range: int = MAX_BLOCK_RANGE,
        max_batch_size: int = MAX_BATCH_SIZE,
        retry: RetryConfig | None = None,
    ) -> None:
        if max_block_range < 1:
            msg = "max_block_range must be at least 1"
            raise ValueError(msg)
        if max_batch_size < 1:
            msg = "max_batch_size must be at least 1"
            raise ValueError(msg)

        self.rpc_client = rpc_client
        self.http_client = http_client
        self.max_block_range = max_block_range
        self.max_batch_size = max_batch_size
        self.retry = retry or RetryConfig()

    def _with_retry(
        self, func: Callable[P, Awaitable[T]]
    ) -> Callable[P, Awaitable[T]]:
        return retry_with_backoff(
            max_retries=self.retry.max_retries,
            base_delay=self.retry.base_delay,
            max_delay=self.retry.max_delay,
            retry_on=(httpx.HTTPError, RPCError, ValueError),
            give_up_on=(RangeTooLargeError,),
        )(func)

    async def _get_logs_once(
        self, address: str, topics: list[str | None], from_block: int, to_block: int
    ) -> list[RawLog]:
        try:
            return await self.rpc_client.get_logs(
                self.http_client, address, topics, from_block, to_block
            )
        except RPCError as e:
            if e.is_range_too_large:
                raise RangeTooLargeError(str(e)) from e
            raise

    async def _fetch_window(
        self, address: str, topics: list[str | None], from_block: int, to_block: int
    ) -> list[RawLog]:
        try:
            return await self._with_retry(self._get_logs_once)(
                address, topics, from_block, to_block
            )
        except RangeTooLargeError as e:
            if from_block == to_block:
                msg = f"node rejects a single-block range at {from_block}: {e}"
                raise FetchError(msg, from_block, to_block) from e

            mid = (from_block + to_block) // 2
            logger.debug(
                "Range %s-%s too large, splitting at %s", from_block, to_block, mid
            )
            left = await self._fetch_window(address, topics, from_block, mid)
            right = await self._fetch_window(address, topics, mid + 1, to_block)
            return left + right
        except (httpx.HTTPError, RPCError, ValueError) as e:
            msg = f"getLogs {from_block}-{to_block} failed: {e}"
            raise FetchError(msg, from_block, to_block) from e

    async def fetch_logs(
        self, address: str, topic0: str, from_block: int, to_block: int
    ) -> list[RawLog]:
        """Return every matching log in [from_block, to_block].

        Args:
            address: Contract address
            topic0: Event signature topic
            from_block: First block, inclusive
            to_block: Last block, inclusive

        Returns:
            Logs ordered by (block_number, log_index)

        Raises:
            FetchError: If the range cannot be fetched completely
            ValueError: If the range is empty
        """
        if to_block < from_block:
            msg = f"Invalid block range {from_block}-{to_block}"
            raise ValueError(msg)

        address = address.lower()
        topic0 = topic0.lower()
        topics: list[str | None] = [topic0]

        logs: list[RawLog] = []
        window_start = from_block
        while window_start <= to_block:
            window_end = min(window_start + self.max_block_range - 1, to_block)
            logs.extend(
                await self._fetch_window(address, topics, window_start, window_end)
            )
            window_start = window_end + 1

        for log in logs:
            if (
                log.removed
                or not from_block <= log.block_number <= to_block
                or log.address != address
                or not log.topics
                or log.topics[0] != topic0
            ):
                msg = (
                    f"inconsistent getLogs response for {from_block}-{to_block}: "
                    f"block {log.block_number} log {log.log_index}"
                )
                raise FetchError(msg, from_block, to_block)

        logs.sort(key=lambda log: log.position)
        logger.debug(
            "Fetched %s logs for %s in %s-%s", len(logs), address, from_block, to_block
        )
        return logs

    async def get_head(self) -> int:
        """Latest block number.

        Raises:
            FetchError: If retries are exhausted
        """
        try:
            return await self._with_retry(self.rpc_client.get_block_number)(
                self.http_client
            )
        except (httpx.HTTPError, RPCError, ValueError) as e:
            msg = f"eth_blockNumber failed: {e}"
            raise FetchError(msg) from e

    async def get_block_headers(
        self, block_numbers: list[int]
    ) -> dict[int, BlockHeader]:
        """Headers for the given blocks.

        Requests are batched, at most ``max_batch_size`` calls per batch, and
        each batch is retried on its own.

        Raises:
            FetchError: If any header cannot be fetched after retries
        """
        numbers = sorted(set(block_numbers))
        headers: dict[int, BlockHeader] = {}
        for start in range(0, len(numbers), self.max_batch_size):
            chunk = numbers[start : start + self.max_batch_size]
            try:
                headers.update(
                    await self._with_retry(self.rpc_client.batch_get_block_headers)(
                        self.http_client, chunk
                    )
                )
            except (httpx.HTTPError, RPCError, ValueError) as e:
                msg = f"eth_getBlockByNumber failed for {chunk[0]}-{chunk[-1]}: {e}"
                raise FetchError(msg, chunk[0], chunk[-1]) from e
        return headers

    async def get_block_header(self, block_number: int) -> BlockHeader:
        """Header of a single block.

        Raises:
            FetchError: If the header cannot be fetched after retries
        """
        headers = await self.get_block_headers([block_number])
        return headers[block_number]


__all__ = ["ChainLogFetcher", "RangeTooLargeError"]
