"""Pydantic models for JSON-RPC requests and responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request model."""

    jsonrpc: str = Field(default="2.0", description="JSON-RPC version")
    method: str = Field(..., description="Method name to call")
    params: list[Any] = Field(
        default_factory=list, description="Method parameters"
    )
    id: int | str = Field(..., description="Request ID")


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response model."""

    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: Any = None
    error: Any = None

    model_config = ConfigDict(extra="allow")


class EthBlockNumberRequest(JsonRpcRequest):
    """JSON-RPC request for eth_blockNumber."""

    method: str = Field(default="eth_blockNumber", frozen=True)
    params: list[Any] = Field(default_factory=list, frozen=True)


class EthGetBlockByNumberRequest(JsonRpcRequest):
    """JSON-RPC request for eth_getBlockByNumber."""

    method: str = Field(default="eth_getBlockByNumber", frozen=True)


class LogFilter(BaseModel):
    """Filter object for eth_getLogs."""

    address: str
    topics: list[str | None]
    from_block: str = Field(..., serialization_alias="fromBlock")
    to_block: str = Field(..., serialization_alias="toBlock")


class EthGetLogsRequest(JsonRpcRequest):
    """JSON-RPC request for eth_getLogs."""

    method: str = Field(default="eth_getLogs", frozen=True)

    @classmethod
    def for_range(
        cls,
        address: str,
        topics: list[str | None],
        from_block: int,
        to_block: int,
        request_id: int = 1,
    ) -> "EthGetLogsRequest":
        """Build a request for an inclusive block range."""
        log_filter = LogFilter(
            address=address,
            topics=topics,
            from_block=hex(from_block),
            to_block=hex(to_block),
        )
        return cls(params=[log_filter.model_dump(by_alias=True)], id=request_id)


__all__ = [
    "EthBlockNumberRequest",
    "EthGetBlockByNumberRequest",
    "EthGetLogsRequest",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LogFilter",
]
