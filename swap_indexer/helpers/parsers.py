"""Parsing utilities for hex-encoded JSON-RPC values."""


def parse_hex_int(hex_value: str | int | None, default: int = 0) -> int:
    """Parse a JSON-RPC quantity to integer.

    Args:
        hex_value: Hex-encoded string, an already-decoded int, or None
        default: Default value if hex_value is None

    Returns:
        int: Parsed integer value

    Example:
        >>> parse_hex_int("0xff")
        255
        >>> parse_hex_int(None, 0)
        0
    """
    if hex_value is None:
        return default
    if isinstance(hex_value, int):
        return hex_value
    return int(hex_value, 16)


def hex_to_bytes(hex_value: str) -> bytes:
    """Decode a 0x-prefixed hex string to bytes.

    Raises:
        ValueError: If the string is not valid hex
    """
    value = hex_value[2:] if hex_value.startswith(("0x", "0X")) else hex_value
    return bytes.fromhex(value)


def normalize_address(address: str) -> str:
    """Lowercase a 20-byte address and validate its width.

    Raises:
        ValueError: If the value is not a 0x-prefixed 20-byte hex string

    Example:
        >>> normalize_address("0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640")
        '0x88e6a0c2ddd26feeb64f039a2c41296fcb3f5640'
    """
    if not address.startswith(("0x", "0X")) or len(hex_to_bytes(address)) != 20:
        msg = f"Invalid address: {address}"
        raise ValueError(msg)
    return "0x" + address[2:].lower()


__all__ = [
    "hex_to_bytes",
    "normalize_address",
    "parse_hex_int",
]
