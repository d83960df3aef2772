"""Tests for RPC client."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from typing import Any

import httpx

from swap_indexer.helpers.exceptions import RPCError
from swap_indexer.helpers.rpc import RPCClient
from swap_indexer.helpers.rpc_models import (
    EthBlockNumberRequest,
    EthGetBlockByNumberRequest,
    JsonRpcRequest,
)


BLOCK_HASH = "0x" + "ab" * 32
PARENT_HASH = "0x" + "cd" * 32

TWO_REQUESTS = [
    JsonRpcRequest(method="eth_a", id="a"),
    JsonRpcRequest(method="eth_b", id="b"),
]


def mock_http_client(payload: Any) -> AsyncMock:
    """AsyncClient whose post() returns the given JSON payload."""
    client = AsyncMock(spec=httpx.AsyncClient)
    response = MagicMock()
    response.json.return_value = payload
    client.post.return_value = response
    return client


def header_payload(number: int) -> dict[str, Any]:
    return {
        "number": hex(number),
        "hash": BLOCK_HASH,
        "parentHash": PARENT_HASH,
        "timestamp": hex(1_700_000_000),
    }


class TestRPCClient:
    """Tests for RPCClient class."""

    def test_init_with_valid_url(self) -> None:
        """Test RPCClient initialization with valid URL."""
        client = RPCClient("https://eth.llamarpc.com")

        assert client.rpc_url == "https://eth.llamarpc.com"
        assert client.timeout == 30.0

    def test_init_with_empty_url_raises(self) -> None:
        """Test that empty URL raises ValueError."""
        with pytest.raises(ValueError, match="RPC URL cannot be empty"):
            RPCClient("")

    @pytest.mark.asyncio
    async def test_send_single_request(self) -> None:
        """Test sending a single request model."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client({"jsonrpc": "2.0", "id": 1, "result": "0x1000"})

        result = await client.send(http_client, EthBlockNumberRequest(id=1))

        assert result == "0x1000"
        http_client.post.assert_called_once()

    @pytest.mark.asyncio
    async def test_send_with_custom_timeout(self) -> None:
        """Test RPC call with custom timeout."""
        client = RPCClient("https://test.rpc", timeout=30.0)
        http_client = mock_http_client({"jsonrpc": "2.0", "id": 1, "result": "0x1"})

        await client.send(http_client, EthBlockNumberRequest(id=1), timeout=60.0)

        assert http_client.post.call_args.kwargs["timeout"] == 60.0

    @pytest.mark.asyncio
    async def test_send_raises_rpc_error(self) -> None:
        """Test that an error member becomes an RPCError."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "error": {"code": -32000, "message": "header not found"},
            }
        )

        with pytest.raises(RPCError, match="header not found") as exc_info:
            await client.send(
                http_client,
                EthGetBlockByNumberRequest(params=["0x1", False], id=1),
            )

        assert exc_info.value.code == -32000

    @pytest.mark.asyncio
    async def test_get_block_number(self) -> None:
        """Test that the head is parsed from hex."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            {"jsonrpc": "2.0", "id": 1, "result": "0x112a880"}
        )

        assert await client.get_block_number(http_client) == 18_000_000

    @pytest.mark.asyncio
    async def test_get_logs_sends_filter(self) -> None:
        """Test the eth_getLogs filter and log parsing."""
        client = RPCClient("https://test.rpc")
        log = {
            "address": "0x88E6A0C2DDD26FEEB64F039A2C41296FCB3F5640",
            "topics": ["0x" + "11" * 32],
            "data": "0x",
            "blockNumber": "0x10",
            "blockHash": BLOCK_HASH,
            "transactionHash": "0x" + "22" * 32,
            "transactionIndex": "0x1",
            "logIndex": "0x2",
            "removed": False,
        }
        http_client = mock_http_client({"jsonrpc": "2.0", "id": 1, "result": [log]})

        logs = await client.get_logs(
            http_client,
            "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640",
            ["0x" + "11" * 32],
            16,
            32,
        )

        sent = http_client.post.call_args.kwargs["json"]
        assert sent["method"] == "eth_getLogs"
        assert sent["params"][0]["fromBlock"] == "0x10"
        assert sent["params"][0]["toBlock"] == "0x20"
        assert logs[0].address == "0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640"
        assert logs[0].position == (16, 2)


class TestBatchCall:
    """Tests for batched requests."""

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self) -> None:
        """Test that an empty batch is answered locally."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client([])

        assert await client.batch_call(http_client, []) == []
        http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_results_follow_request_order(self) -> None:
        """Test that reordered responses are matched by id."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            [
                {"jsonrpc": "2.0", "id": 1, "result": "second"},
                {"jsonrpc": "2.0", "id": 0, "result": "first"},
            ]
        )

        results = await client.batch_call(http_client, TWO_REQUESTS)

        assert results == ["first", "second"]
        sent = http_client.post.call_args.kwargs["json"]
        assert [entry["id"] for entry in sent] == [0, 1]

    @pytest.mark.asyncio
    async def test_missing_response_raises(self) -> None:
        """Test that a dropped response fails the whole batch."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client([{"jsonrpc": "2.0", "id": 0, "result": "x"}])

        with pytest.raises(RPCError, match="missing request 1"):
            await client.batch_call(http_client, TWO_REQUESTS)

    @pytest.mark.asyncio
    async def test_error_entry_raises(self) -> None:
        """Test that one error entry fails the whole batch."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            [
                {"jsonrpc": "2.0", "id": 0, "result": "x"},
                {"jsonrpc": "2.0", "id": 1, "error": {"code": -1, "message": "nope"}},
            ]
        )

        with pytest.raises(RPCError, match="nope"):
            await client.batch_call(http_client, TWO_REQUESTS)

    @pytest.mark.asyncio
    async def test_rejected_batch_raises(self) -> None:
        """Test that a single error object in place of a list raises."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            {
                "jsonrpc": "2.0",
                "id": None,
                "error": {"code": -32600, "message": "batch too large"},
            }
        )

        with pytest.raises(RPCError, match="batch too large"):
            await client.batch_call(http_client, TWO_REQUESTS[:1])

    @pytest.mark.asyncio
    async def test_batch_get_block_headers(self) -> None:
        """Test that headers are keyed by block number."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            [
                {"jsonrpc": "2.0", "id": 0, "result": header_payload(10)},
                {"jsonrpc": "2.0", "id": 1, "result": header_payload(11)},
            ]
        )

        headers = await client.batch_get_block_headers(http_client, [10, 11])

        assert sorted(headers) == [10, 11]
        assert headers[11].number == 11

    @pytest.mark.asyncio
    async def test_batch_get_block_headers_missing_block(self) -> None:
        """Test that a null header fails the batch."""
        client = RPCClient("https://test.rpc")
        http_client = mock_http_client(
            [
                {"jsonrpc": "2.0", "id": 0, "result": header_payload(10)},
                {"jsonrpc": "2.0", "id": 1, "result": None},
            ]
        )

        with pytest.raises(RPCError, match="block 11 not found"):
            await client.batch_get_block_headers(http_client, [10, 11])


class TestRPCError:
    """Tests for RPCError classification."""

    @pytest.mark.parametrize(
        ("code", "message"),
        [
            (-32005, "query returned more than 10000 results"),
            (-32602, "eth_getLogs block range is too large"),
            (-32000, "Log response size exceeded"),
            (None, "exceeds max results 20000"),
        ],
    )
    def test_range_too_large(self, code: int | None, message: str) -> None:
        """Test provider messages that mean the window must shrink."""
        assert RPCError(code, message).is_range_too_large

    @pytest.mark.parametrize(
        ("code", "message"),
        [
            (-32005, "daily request rate exceeded"),
            (-32000, "header not found"),
        ],
    )
    def test_not_range_too_large(self, code: int | None, message: str) -> None:
        """Test that rate limits and other errors are not range errors."""
        assert not RPCError(code, message).is_range_too_large

    def test_from_response_with_plain_string(self) -> None:
        """Test non-object error members."""
        error = RPCError.from_response("boom")
        assert error.code is None
        assert error.message == "boom"
