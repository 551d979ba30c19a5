"""Unit tests for aether.utils."""

from __future__ import annotations

import pytest

from aether.utils import (
    InvalidHexError,
    bytes_to_hex,
    decode_quantity,
    encode_quantity,
    hex_to_bytes,
    keccak256,
    to_checksum_address,
    to_hex,
)


class TestQuantity:
    """Minimal-hex quantity encoding."""

    def test_zero(self) -> None:
        assert encode_quantity(0) == "0x0"
        assert decode_quantity("0x0") == 0

    def test_roundtrip(self) -> None:
        for value in (1, 15, 16, 255, 1024, 2**64, 2**256 - 1):
            assert decode_quantity(encode_quantity(value)) == value

    def test_lowercase_output(self) -> None:
        assert encode_quantity(0xABCDEF) == "0xabcdef"

    def test_rejects_leading_zero(self) -> None:
        with pytest.raises(InvalidHexError):
            decode_quantity("0x01")

    def test_rejects_empty_digits(self) -> None:
        with pytest.raises(InvalidHexError):
            decode_quantity("0x")

    def test_rejects_missing_prefix(self) -> None:
        with pytest.raises(InvalidHexError):
            decode_quantity("ff")

    def test_rejects_non_hex(self) -> None:
        with pytest.raises(InvalidHexError):
            decode_quantity("0xzz")

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            encode_quantity(-1)

    def test_rejects_bool(self) -> None:
        with pytest.raises(TypeError):
            encode_quantity(True)


class TestHexBytes:
    def test_empty(self) -> None:
        assert hex_to_bytes("0x") == b""
        assert bytes_to_hex(b"") == "0x"

    def test_mixed_case_input(self) -> None:
        assert hex_to_bytes("0xDeAdBeEf") == b"\xde\xad\xbe\xef"

    def test_output_is_lowercase(self) -> None:
        assert bytes_to_hex(b"\xde\xad") == "0xdead"

    def test_rejects_odd_length(self) -> None:
        with pytest.raises(InvalidHexError):
            hex_to_bytes("0xabc")

    def test_rejects_missing_prefix(self) -> None:
        with pytest.raises(InvalidHexError):
            hex_to_bytes("abcd")

    def test_to_hex_dispatch(self) -> None:
        assert to_hex(255) == "0xff"
        assert to_hex(b"\x00\xff") == "0x00ff"
        assert to_hex("0xAB") == "0xab"


class TestKeccak:
    def test_empty(self) -> None:
        assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"

    def test_transfer_selector(self) -> None:
        assert keccak256(b"transfer(address,uint256)")[:4].hex() == "a9059cbb"


class TestChecksumAddress:
    # EIP-55 reference vectors
    VECTORS = [
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359",
        "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB",
        "0xD1220A0cf47c7B9Be7A2E6BA89F429762e7b9aDb",
    ]

    def test_vectors(self) -> None:
        for address in self.VECTORS:
            assert to_checksum_address(address.lower()) == address

    def test_from_bytes(self) -> None:
        raw = bytes.fromhex(self.VECTORS[0][2:].lower())
        assert to_checksum_address(raw) == self.VECTORS[0]

    def test_rejects_short(self) -> None:
        with pytest.raises(ValueError):
            to_checksum_address("0x1234")
