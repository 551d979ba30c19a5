"""
ECDSA / secp256k1 signatures for Ethereum payloads.

Handles the signature envelope (r, s, y-parity) and the two v-value
conventions in use:

- legacy transactions and EIP-191 messages carry ``v = 27 + parity``, or
  ``v = parity + chain_id * 2 + 35`` once EIP-155 replay protection is on;
- typed transactions (0x01, 0x02, 0x03) carry the bare parity (0 or 1).

Recovery and signing are delegated to eth-keys. No key storage happens here;
``LocalSigner`` only holds a key for the lifetime of the object.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from ..utils import hex_to_bytes, to_bytes

SECP256K1_N = int(
    "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141",
    16,
)


class InvalidSignatureError(ValueError):
    pass


@dataclass(frozen=True)
class Signature:
    r: int
    s: int
    y_parity: int

    def __post_init__(self) -> None:
        if self.y_parity not in (0, 1):
            raise InvalidSignatureError(f"y_parity must be 0 or 1, got {self.y_parity}")

    @classmethod
    def from_v(cls, r: int, s: int, v: int) -> "Signature":
        """Build from a legacy v (27/28 or EIP-155 folded)."""
        parity, _ = split_legacy_v(v)
        return cls(r=r, s=s, y_parity=parity)

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "Signature":
        """Parse a 65-byte ``r || s || v`` signature (v as 0/1 or 27/28)."""
        raw = to_bytes(data)
        if len(raw) != 65:
            raise InvalidSignatureError(f"Signature must be 65 bytes, got {len(raw)}")
        v = raw[64]
        if v >= 27:
            v -= 27
        return cls(
            r=int.from_bytes(raw[:32], "big"),
            s=int.from_bytes(raw[32:64], "big"),
            y_parity=v,
        )

    def legacy_v(self, chain_id: int | None = None) -> int:
        if chain_id is None:
            return 27 + self.y_parity
        return self.y_parity + chain_id * 2 + 35

    def to_bytes(self) -> bytes:
        """65-byte ``r || s || v`` with v in the 27/28 convention."""
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([27 + self.y_parity])


def split_legacy_v(v: int) -> tuple[int, int | None]:
    """Return ``(y_parity, chain_id)`` for a legacy v value."""
    if v in (27, 28):
        return v - 27, None
    if v >= 35:
        return (v - 35) % 2, (v - 35) // 2
    raise InvalidSignatureError(f"Invalid legacy v value: {v}")


def _check_range(signature: Signature) -> None:
    if not 1 <= signature.r < SECP256K1_N:
        raise InvalidSignatureError("Signature r is out of range")
    if not 1 <= signature.s < SECP256K1_N:
        raise InvalidSignatureError("Signature s is out of range")


def recover_address(message_hash: bytes | str, signature: Signature) -> str:
    """Recover the checksummed signer address of a 32-byte message hash."""
    digest = to_bytes(message_hash)
    if len(digest) != 32:
        raise InvalidSignatureError(f"Message hash must be 32 bytes, got {len(digest)}")
    _check_range(signature)
    try:
        eth_sig = keys.Signature(vrs=(signature.y_parity, signature.r, signature.s))
        public_key = eth_sig.recover_public_key_from_msg_hash(digest)
    except (BadSignature, ValidationError) as exc:
        raise InvalidSignatureError(f"Unrecoverable signature: {exc}") from exc
    return public_key.to_checksum_address()


def recover_message_address(message: str | bytes, signature: bytes | str) -> str:
    """Recover the signer of an EIP-191 ``personal_sign`` message."""
    signable = encode_defunct(text=message) if isinstance(message, str) else encode_defunct(primitive=message)
    raw = to_bytes(signature)
    _check_range(Signature.from_bytes(raw))
    try:
        return Account.recover_message(signable, signature=raw)
    except (BadSignature, ValidationError, ValueError) as exc:
        raise InvalidSignatureError(f"Unrecoverable signature: {exc}") from exc


class HashSigner(Protocol):
    def sign_hash(self, message_hash: bytes) -> Signature:
        ...


class LocalSigner:
    """Signs hashes and messages with an in-memory secp256k1 key."""

    def __init__(self, private_key: str | bytes) -> None:
        if isinstance(private_key, str):
            raw = hex_to_bytes(private_key if private_key.startswith("0x") else "0x" + private_key)
        else:
            raw = bytes(private_key)
        if len(raw) != 32:
            raise ValueError("Invalid private key length, expected 32 bytes")
        if not 0 < int.from_bytes(raw, "big") < SECP256K1_N:
            raise ValueError("Invalid private key range for secp256k1")
        self._key = keys.PrivateKey(raw)
        self._account = Account.from_key(raw)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_hash(self, message_hash: bytes) -> Signature:
        digest = to_bytes(message_hash)
        if len(digest) != 32:
            raise ValueError(f"Message hash must be 32 bytes, got {len(digest)}")
        signed = self._key.sign_msg_hash(digest)
        return Signature(r=signed.r, s=signed.s, y_parity=signed.v)

    def sign_message(self, message: str | bytes) -> bytes:
        """Sign using EIP-191 personal_sign; returns 65 bytes (r + s + v)."""
        signable = encode_defunct(text=message) if isinstance(message, str) else encode_defunct(primitive=message)
        signed = self._account.sign_message(signable)
        return bytes(signed.signature)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address})"


__all__ = [
    "HashSigner",
    "InvalidSignatureError",
    "LocalSigner",
    "SECP256K1_N",
    "Signature",
    "recover_address",
    "recover_message_address",
    "split_legacy_v",
]
