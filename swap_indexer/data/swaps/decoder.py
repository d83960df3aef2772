"""Decode raw pool logs into SwapEvent records.

The Swap event of a concentrated-liquidity pool is

    Swap(address indexed sender, address indexed recipient,
         int256 amount0, int256 amount1, uint160 sqrtPriceX96,
         uint128 liquidity, int24 tick)

so topics carry [topic0, sender, recipient] and the data section carries the
five non-indexed values, one 32-byte word each.
"""

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import keccak
from pydantic import ValidationError

from swap_indexer.data.swaps.models import SwapEvent
from swap_indexer.helpers.exceptions import DecodeError
from swap_indexer.helpers.models import RawLog
from swap_indexer.helpers.parsers import hex_to_bytes


SWAP_EVENT_SIGNATURE = "Swap(address,address,int256,int256,uint160,uint128,int24)"
SWAP_TOPIC = "0x" + keccak(text=SWAP_EVENT_SIGNATURE).hex()

SWAP_DATA_TYPES = ("int256", "int256", "uint160", "uint128", "int24")
SWAP_DATA_LENGTH = 32 * len(SWAP_DATA_TYPES)
SWAP_TOPIC_COUNT = 3


def derive_event_id(
    chain_id: int, block_hash: str, transaction_index: int, log_index: int
) -> str:
    """Deterministic event id from the log's position on a specific block.

    Re-fetching the same log yields the same id; the same position on a
    replacement block (after a reorg) yields a different one.

    Raises:
        ValueError: If block_hash is not 32 bytes of hex
    """
    block_hash_bytes = hex_to_bytes(block_hash)
    if len(block_hash_bytes) != 32:
        msg = f"Invalid block hash: {block_hash}"
        raise ValueError(msg)
    preimage = (
        chain_id.to_bytes(8, "big")
        + block_hash_bytes
        + transaction_index.to_bytes(4, "big")
        + log_index.to_bytes(4, "big")
    )
    return "0x" + keccak(preimage).hex()


def _decode_address_topic(topic: str) -> str:
    topic_bytes = hex_to_bytes(topic)
    if len(topic_bytes) != 32:
        msg = f"address topic must be 32 bytes, got {len(topic_bytes)}"
        raise DecodeError(msg)
    (address,) = decode(["address"], topic_bytes)
    return address.lower()


def decode_swap_log(log: RawLog, chain_id: int, block_timestamp: int) -> SwapEvent:
    """Decode a raw Swap log.

    Args:
        log: Raw log as returned by eth_getLogs
        chain_id: Chain the log was fetched from
        block_timestamp: Timestamp of the log's block in seconds

    Returns:
        Typed SwapEvent (created_at is left unset until insertion)

    Raises:
        DecodeError: If topics or data do not match the Swap layout
    """
    if len(log.topics) != SWAP_TOPIC_COUNT:
        msg = f"expected {SWAP_TOPIC_COUNT} topics, got {len(log.topics)}"
        raise DecodeError(msg, log.block_number, log.log_index)

    if log.topics[0] != SWAP_TOPIC:
        msg = f"unexpected topic0 {log.topics[0]}"
        raise DecodeError(msg, log.block_number, log.log_index)

    try:
        data = hex_to_bytes(log.data)
        if len(data) != SWAP_DATA_LENGTH:
            msg = f"expected {SWAP_DATA_LENGTH} data bytes, got {len(data)}"
            raise DecodeError(msg, log.block_number, log.log_index)  # noqa: TRY301

        sender = _decode_address_topic(log.topics[1])
        recipient = _decode_address_topic(log.topics[2])
        amount0, amount1, sqrt_price_x96, liquidity, tick = decode(
            list(SWAP_DATA_TYPES), data
        )

        return SwapEvent(
            id=derive_event_id(
                chain_id, log.block_hash, log.transaction_index, log.log_index
            ),
            chain_id=chain_id,
            address=log.address,
            sender=sender,
            recipient=recipient,
            amount0=amount0,
            amount1=amount1,
            sqrt_price_x96=sqrt_price_x96,
            liquidity=liquidity,
            tick=tick,
            block_number=log.block_number,
            block_timestamp=block_timestamp,
            transaction_hash=log.transaction_hash,
            log_index=log.log_index,
        )
    except DecodeError as e:
        if e.block_number is None:
            raise DecodeError(str(e), log.block_number, log.log_index) from e
        raise
    except (DecodingError, ValidationError, ValueError) as e:
        msg = f"malformed Swap log: {e}"
        raise DecodeError(msg, log.block_number, log.log_index) from e


def encode_swap_log(
    event: SwapEvent, block_hash: str, transaction_index: int
) -> RawLog:
    """Encode an event back into the raw log it was decoded from.

    Raises:
        ValueError: If a field does not fit its ABI type
    """
    try:
        topics = [
            SWAP_TOPIC,
            "0x" + encode(["address"], [event.sender]).hex(),
            "0x" + encode(["address"], [event.recipient]).hex(),
        ]
        data = encode(
            list(SWAP_DATA_TYPES),
            [
                event.amount0,
                event.amount1,
                event.sqrt_price_x96,
                event.liquidity,
                event.tick,
            ],
        )
    except EncodingError as e:
        msg = f"cannot encode Swap event {event.id}: {e}"
        raise ValueError(msg) from e

    return RawLog(
        address=event.address,
        topics=topics,
        data="0x" + data.hex(),
        block_number=event.block_number,
        block_hash=block_hash,
        transaction_hash=event.transaction_hash,
        transaction_index=transaction_index,
        log_index=event.log_index,
    )


class SwapDecoder:
    """Decoder bound to the chain of one tracked pair."""

    topic = SWAP_TOPIC

    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id

    def decode(self, log: RawLog, block_timestamp: int) -> SwapEvent:
        """Decode a single log, see decode_swap_log."""
        return decode_swap_log(log, self.chain_id, block_timestamp)

    def decode_many(
        self, logs: list[RawLog], block_timestamps: dict[int, int]
    ) -> list[SwapEvent]:
        """Decode logs of a block range, all or nothing.

        Raises:
            DecodeError: On the first log that does not decode
            KeyError: If a log's block has no timestamp
        """
        return [self.decode(log, block_timestamps[log.block_number]) for log in logs]


__all__ = [
    "SWAP_EVENT_SIGNATURE",
    "SWAP_TOPIC",
    "SwapDecoder",
    "decode_swap_log",
    "derive_event_id",
    "encode_swap_log",
]
