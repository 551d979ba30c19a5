from __future__ import annotations

import re

from eth_hash.auto import keccak

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")
_QUANTITY_RE = re.compile(r"^0x(0|[1-9a-fA-F][0-9a-fA-F]*)$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class InvalidHexError(ValueError):
    pass


def keccak256(data: bytes) -> bytes:
    # NOTE: Keccak-256 != SHA3-256 (NIST). Never use hashlib.sha3_256 here.
    return keccak(bytes(data))


def is_hex(value: object) -> bool:
    return isinstance(value, str) and bool(_HEX_RE.match(value))


def hex_to_bytes(value: str) -> bytes:
    if not is_hex(value):
        raise InvalidHexError(f"Not a 0x-prefixed hex string: {value!r}")
    digits = value[2:]
    if len(digits) % 2:
        raise InvalidHexError(f"Hex string has odd length: {value!r}")
    return bytes.fromhex(digits)


def bytes_to_hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def to_bytes(value: bytes | bytearray | str) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return hex_to_bytes(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def to_hex(value: bytes | bytearray | int | str) -> str:
    """Wire form of bytes (data) or an integer (quantity)."""
    if isinstance(value, bool):
        raise TypeError("Booleans have no hex wire form")
    if isinstance(value, int):
        return encode_quantity(value)
    return bytes_to_hex(to_bytes(value))


def encode_quantity(value: int) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Quantity must be int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"Quantity must be non-negative: {value}")
    return hex(value)


def decode_quantity(value: str) -> int:
    """Decode a minimal-hex quantity. ``0x0`` is valid, ``0x01`` is not."""
    if not isinstance(value, str) or not _QUANTITY_RE.match(value):
        raise InvalidHexError(f"Invalid quantity: {value!r}")
    return int(value, 16)


def int_to_big_endian(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"Cannot encode negative integer: {value}")
    return value.to_bytes((value.bit_length() + 7) // 8, "big")


def is_address(value: object) -> bool:
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def to_checksum_address(address: str | bytes) -> str:
    """Convert an address to EIP-55 checksummed format."""
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise ValueError(f"Address must be 20 bytes, got {len(address)}")
        addr = bytes(address).hex()
    else:
        if not is_address(address):
            raise ValueError(f"Invalid address: {address!r}")
        addr = address[2:].lower()
    addr_hash = keccak256(addr.encode("ascii")).hex()
    result = "0x"
    for i, c in enumerate(addr):
        if c in "abcdef":
            result += c.upper() if int(addr_hash[i], 16) >= 8 else c
        else:
            result += c
    return result


def address_to_bytes(address: str | bytes) -> bytes:
    if isinstance(address, (bytes, bytearray)):
        raw = bytes(address)
    elif is_address(address):
        raw = bytes.fromhex(address[2:])
    else:
        raise ValueError(f"Invalid address: {address!r}")
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes, got {len(raw)}")
    return raw
