"""RLP codec tests."""

from __future__ import annotations

import pytest

from aether.codec import rlp
from aether.codec.rlp import MalformedRlpError


class TestEncode:
    """Vectors from the Ethereum wiki RLP page."""

    def test_empty_string(self) -> None:
        assert rlp.encode(b"") == b"\x80"

    def test_single_low_byte_is_itself(self) -> None:
        assert rlp.encode(b"\x0f") == b"\x0f"
        assert rlp.encode(b"\x7f") == b"\x7f"

    def test_single_high_byte_gets_prefix(self) -> None:
        assert rlp.encode(b"\x80") == b"\x81\x80"

    def test_short_string(self) -> None:
        assert rlp.encode(b"dog") == b"\x83dog"

    def test_list_of_strings(self) -> None:
        assert rlp.encode([b"cat", b"dog"]) == b"\xc8\x83cat\x83dog"

    def test_empty_list(self) -> None:
        assert rlp.encode([]) == b"\xc0"

    def test_integers(self) -> None:
        assert rlp.encode(0) == b"\x80"
        assert rlp.encode(15) == b"\x0f"
        assert rlp.encode(1024) == b"\x82\x04\x00"

    def test_long_string(self) -> None:
        data = b"Lorem ipsum dolor sit amet, consectetur adipisicing elit"
        assert len(data) == 56
        assert rlp.encode(data) == b"\xb8\x38" + data

    def test_set_theoretic_representation_of_three(self) -> None:
        assert rlp.encode([[], [[]], [[], [[]]]]) == bytes.fromhex("c7c0c1c0c3c0c1c0")

    def test_long_list(self) -> None:
        items = [b"a" * 10] * 6
        encoded = rlp.encode(items)
        assert encoded[:2] == b"\xf8\x42"
        assert rlp.decode(encoded) == items

    def test_rejects_bool(self) -> None:
        with pytest.raises(TypeError):
            rlp.encode(True)

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            rlp.encode(-1)


class TestDecode:
    def test_roundtrip_nested(self) -> None:
        item = [b"", b"\x01", [b"abc", [b"\xff" * 60]], b"x" * 1024]
        assert rlp.decode(rlp.encode(item)) == item

    def test_rejects_empty_input(self) -> None:
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"")

    def test_rejects_trailing_bytes(self) -> None:
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\x83dog\x00")

    def test_rejects_single_byte_with_prefix(self) -> None:
        # 0x05 must be encoded as itself, not 0x8105
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\x81\x05")

    def test_rejects_long_form_for_short_payload(self) -> None:
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\xb8\x03dog")

    def test_rejects_length_with_leading_zero(self) -> None:
        data = b"a" * 60
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\xb9\x00\x3c" + data)

    def test_rejects_truncated_string(self) -> None:
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\x83do")

    def test_rejects_truncated_list(self) -> None:
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\xc8\x83cat\x83do")

    def test_rejects_child_overrunning_list(self) -> None:
        # list claims 4 bytes of payload, child claims 5
        with pytest.raises(MalformedRlpError):
            rlp.decode(b"\xc4\x84abcd")


class TestDecodeInt:
    def test_canonical(self) -> None:
        assert rlp.decode_int(b"") == 0
        assert rlp.decode_int(b"\x04\x00") == 1024

    def test_rejects_leading_zero(self) -> None:
        with pytest.raises(MalformedRlpError):
            rlp.decode_int(b"\x00\x01")


def test_encode_int_is_minimal() -> None:
    assert rlp.encode_int(0) == b""
    assert rlp.encode_int(255) == b"\xff"
    assert rlp.encode_int(256) == b"\x01\x00"
