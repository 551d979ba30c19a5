"""
Recursive Length Prefix (RLP) codec.

Items are byte strings or (nested) lists of items. Integers are accepted on
the encode side and written as minimal big-endian byte strings, with zero
as the empty string. Decoding is strict: only canonical encodings are
accepted, so ``decode(encode(x)) == x`` and ``encode(decode(b)) == b``.
"""

from __future__ import annotations

from typing import Sequence, Union

from ..utils import int_to_big_endian

RlpItem = Union[bytes, list["RlpItem"]]

SHORT_STRING_OFFSET = 0x80
LONG_STRING_OFFSET = 0xB7
SHORT_LIST_OFFSET = 0xC0
LONG_LIST_OFFSET = 0xF7
SHORT_MAX_LENGTH = 55


class MalformedRlpError(ValueError):
    pass


def encode(item: bytes | int | Sequence) -> bytes:
    if isinstance(item, bool):
        raise TypeError("RLP has no boolean encoding; pass an int or bytes")
    if isinstance(item, int):
        return _encode_string(encode_int(item))
    if isinstance(item, (bytes, bytearray, memoryview)):
        return _encode_string(bytes(item))
    if isinstance(item, (list, tuple)):
        payload = b"".join(encode(child) for child in item)
        return _length_prefix(len(payload), SHORT_LIST_OFFSET, LONG_LIST_OFFSET) + payload
    raise TypeError(f"Cannot RLP-encode {type(item).__name__}")


def encode_int(value: int) -> bytes:
    return int_to_big_endian(value)


def _encode_string(data: bytes) -> bytes:
    if len(data) == 1 and data[0] < SHORT_STRING_OFFSET:
        return data
    return _length_prefix(len(data), SHORT_STRING_OFFSET, LONG_STRING_OFFSET) + data


def _length_prefix(length: int, short_offset: int, long_offset: int) -> bytes:
    if length <= SHORT_MAX_LENGTH:
        return bytes([short_offset + length])
    length_bytes = int_to_big_endian(length)
    if len(length_bytes) > 8:
        raise ValueError(f"RLP payload too long: {length} bytes")
    return bytes([long_offset + len(length_bytes)]) + length_bytes


def decode(data: bytes) -> RlpItem:
    """Decode exactly one RLP item; trailing bytes are an error."""
    data = bytes(data)
    if not data:
        raise MalformedRlpError("Cannot decode empty input")
    item, end = _decode_item(data, 0)
    if end != len(data):
        raise MalformedRlpError(f"Trailing bytes: consumed {end} of {len(data)}")
    return item


def decode_int(data: bytes) -> int:
    """Decode a canonical RLP integer (no leading zero bytes)."""
    if data[:1] == b"\x00":
        raise MalformedRlpError(f"Integer has leading zero byte: 0x{data.hex()}")
    return int.from_bytes(data, "big")


def _decode_item(data: bytes, offset: int) -> tuple[RlpItem, int]:
    prefix = data[offset]

    if prefix < SHORT_STRING_OFFSET:
        return data[offset:offset + 1], offset + 1

    if prefix < SHORT_LIST_OFFSET:
        start, length = _read_length(data, offset, SHORT_STRING_OFFSET, LONG_STRING_OFFSET)
        end = start + length
        if length == 1 and data[start] < SHORT_STRING_OFFSET:
            raise MalformedRlpError("Single byte below 0x80 must not carry a prefix")
        return data[start:end], end

    start, length = _read_length(data, offset, SHORT_LIST_OFFSET, LONG_LIST_OFFSET)
    end = start + length
    items: list[RlpItem] = []
    cursor = start
    while cursor < end:
        item, cursor = _decode_item(data, cursor)
        items.append(item)
    if cursor != end:
        raise MalformedRlpError("List payload overruns its declared length")
    return items, end


def _read_length(data: bytes, offset: int, short_offset: int, long_offset: int) -> tuple[int, int]:
    """Return (payload start, payload length) for the prefix at ``offset``."""
    prefix = data[offset]
    if prefix <= long_offset:
        start = offset + 1
        length = prefix - short_offset
    else:
        length_of_length = prefix - long_offset
        start = offset + 1 + length_of_length
        if start > len(data):
            raise MalformedRlpError("Truncated length prefix")
        length_bytes = data[offset + 1:start]
        if length_bytes[0] == 0:
            raise MalformedRlpError("Length prefix has leading zero byte")
        length = int.from_bytes(length_bytes, "big")
        if length <= SHORT_MAX_LENGTH:
            raise MalformedRlpError("Long-form length used for a short payload")
    if start + length > len(data):
        raise MalformedRlpError(
            f"Truncated payload: need {length} bytes at {start}, have {len(data) - start}"
        )
    return start, length


__all__ = [
    "MalformedRlpError",
    "RlpItem",
    "decode",
    "decode_int",
    "encode",
    "encode_int",
]
