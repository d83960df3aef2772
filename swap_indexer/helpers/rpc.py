"""Ethereum JSON-RPC client utilities."""

from typing import Any

import httpx

from swap_indexer.helpers.exceptions import RPCError
from swap_indexer.helpers.models import BlockHeader, RawLog
from swap_indexer.helpers.parsers import parse_hex_int
from swap_indexer.helpers.rpc_models import (
    EthBlockNumberRequest,
    EthGetBlockByNumberRequest,
    EthGetLogsRequest,
    JsonRpcRequest,
    JsonRpcResponse,
)


class RPCClient:
    """Ethereum JSON-RPC client with batching support."""

    def __init__(self, rpc_url: str, timeout: float = 30.0) -> None:
        """Initialize RPC client.

        Args:
            rpc_url: Ethereum JSON-RPC endpoint URL
            timeout: Default timeout for requests in seconds

        Raises:
            ValueError: If rpc_url is empty or None
        """
        if not rpc_url:
            msg = "RPC URL cannot be empty"
            raise ValueError(msg)

        self.rpc_url = rpc_url
        self.timeout = timeout

    async def send(
        self,
        client: httpx.AsyncClient,
        request: JsonRpcRequest,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send a prepared request model and return its result.

        Raises:
            httpx.HTTPError: If the HTTP request fails
            RPCError: If the RPC response contains an error
        """
        response = await client.post(
            self.rpc_url, json=request.model_dump(), timeout=timeout or self.timeout
        )
        response.raise_for_status()
        result = JsonRpcResponse.model_validate(response.json())

        if result.error is not None:
            raise RPCError.from_response(result.error)

        return result.result

    async def batch_call(
        self,
        client: httpx.AsyncClient,
        requests: list[JsonRpcRequest],
        *,
        timeout: float | None = None,
    ) -> list[Any]:
        """Make multiple JSON-RPC calls in a single batch request.

        Unlike single calls, a batch fails as a whole: one error entry or a
        missing response raises, so callers never see partial results.

        Args:
            client: HTTP client instance
            requests: Request models; ids are reassigned by position
            timeout: Optional timeout override

        Returns:
            List of results in the same order as requests

        Raises:
            httpx.HTTPError: If the HTTP request fails
            RPCError: If any response carries an error or is missing
        """
        if not requests:
            return []

        batch_payload = [
            request.model_copy(update={"id": idx}).model_dump()
            for idx, request in enumerate(requests)
        ]

        response = await client.post(
            self.rpc_url, json=batch_payload, timeout=timeout or self.timeout
        )
        response.raise_for_status()
        payload = response.json()

        if not isinstance(payload, list):
            # Some nodes answer a rejected batch with a single error object
            raise RPCError.from_response(
                payload.get("error") if isinstance(payload, dict) else payload
            )

        # Match responses to requests by ID, batches may come back reordered
        by_id = {
            r.id: r for r in map(JsonRpcResponse.model_validate, payload)
        }

        results: list[Any] = []
        for idx in range(len(requests)):
            result = by_id.get(idx)
            if result is None:
                msg = f"batch response is missing request {idx}"
                raise RPCError(None, msg)
            if result.error is not None:
                raise RPCError.from_response(result.error)
            results.append(result.result)

        return results

    async def get_block_number(self, client: httpx.AsyncClient) -> int:
        """Get the latest block number.

        Args:
            client: HTTP client instance

        Returns:
            Latest block number
        """
        result = await self.send(client, EthBlockNumberRequest(id=1))
        return parse_hex_int(result) if result else 0

    async def batch_get_block_headers(
        self,
        client: httpx.AsyncClient,
        block_numbers: list[int],
    ) -> dict[int, BlockHeader]:
        """Batch multiple eth_getBlockByNumber calls into a single request.

        Returns:
            Dict mapping block number to its header

        Raises:
            RPCError: If any block is missing or errored
        """
        results = await self.batch_call(
            client,
            [
                # False = only tx hashes
                EthGetBlockByNumberRequest(params=[hex(n), False], id=idx)
                for idx, n in enumerate(block_numbers)
            ],
        )

        headers: dict[int, BlockHeader] = {}
        for block_number, result in zip(block_numbers, results, strict=True):
            if result is None:
                msg = f"block {block_number} not found"
                raise RPCError(None, msg)
            headers[block_number] = BlockHeader.model_validate(result)
        return headers

    async def get_logs(
        self,
        client: httpx.AsyncClient,
        address: str,
        topics: list[str | None],
        from_block: int,
        to_block: int,
    ) -> list[RawLog]:
        """Fetch logs for an address and topic filter over an inclusive range."""
        request = EthGetLogsRequest.for_range(address, topics, from_block, to_block)
        result = await self.send(client, request)
        return [RawLog.model_validate(entry) for entry in result or []]


__all__ = ["RPCClient"]
