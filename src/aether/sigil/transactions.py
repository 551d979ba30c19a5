"""
Transaction serialization for the legacy, EIP-2930, EIP-1559 and EIP-4844
envelopes.

Lifecycle: build a transaction object, ``serialize_unsigned`` it into the
signing pre-image, hash it with ``signing_hash``, have a signer sign that
hash, then ``serialize_signed`` to get the payload for
``eth_sendRawTransaction``. ``parse_transaction`` reverses either form.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from ..codec import rlp
from ..codec.rlp import MalformedRlpError
from ..utils import address_to_bytes, keccak256, to_bytes, to_checksum_address
from .signature import HashSigner, Signature, recover_address, split_legacy_v

ACCESS_LIST_TX_TYPE = 0x01
FEE_MARKET_TX_TYPE = 0x02
BLOB_TX_TYPE = 0x03


class InvalidTransactionError(ValueError):
    pass


@dataclass(frozen=True)
class AccessListEntry:
    address: str
    storage_keys: tuple[bytes, ...] = ()

    def to_rlp(self) -> list:
        keys = [to_bytes(k) for k in self.storage_keys]
        if any(len(k) != 32 for k in keys):
            raise InvalidTransactionError("Storage keys must be 32 bytes")
        return [address_to_bytes(self.address), keys]


AccessList = tuple[AccessListEntry, ...]


@dataclass(frozen=True)
class LegacyTransaction:
    nonce: int
    gas_price: int
    gas: int
    to: str | None
    value: int = 0
    data: bytes = b""
    chain_id: int | None = None


@dataclass(frozen=True)
class AccessListTransaction:
    chain_id: int
    nonce: int
    gas_price: int
    gas: int
    to: str | None
    value: int = 0
    data: bytes = b""
    access_list: AccessList = ()


@dataclass(frozen=True)
class FeeMarketTransaction:
    chain_id: int
    nonce: int
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    gas: int
    to: str | None
    value: int = 0
    data: bytes = b""
    access_list: AccessList = ()


@dataclass(frozen=True)
class BlobTransaction:
    """EIP-4844 transaction.

    ``blobs``, ``commitments`` and ``proofs`` are the optional sidecar; when
    present the signed form uses the network wrapper. They are taken as given,
    no KZG computation happens here.
    """

    chain_id: int
    nonce: int
    max_priority_fee_per_gas: int
    max_fee_per_gas: int
    gas: int
    to: str
    max_fee_per_blob_gas: int
    blob_versioned_hashes: tuple[bytes, ...]
    value: int = 0
    data: bytes = b""
    access_list: AccessList = ()
    blobs: tuple[bytes, ...] = field(default=(), compare=False)
    commitments: tuple[bytes, ...] = field(default=(), compare=False)
    proofs: tuple[bytes, ...] = field(default=(), compare=False)


Transaction = Union[LegacyTransaction, AccessListTransaction, FeeMarketTransaction, BlobTransaction]


def transaction_type(tx: Transaction) -> int | None:
    if isinstance(tx, LegacyTransaction):
        return None
    if isinstance(tx, AccessListTransaction):
        return ACCESS_LIST_TX_TYPE
    if isinstance(tx, FeeMarketTransaction):
        return FEE_MARKET_TX_TYPE
    if isinstance(tx, BlobTransaction):
        return BLOB_TX_TYPE
    raise InvalidTransactionError(f"Unknown transaction object: {type(tx).__name__}")


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _to_field(to: str | None) -> bytes:
    return b"" if to is None else address_to_bytes(to)


def _access_list_field(access_list: AccessList) -> list:
    return [entry.to_rlp() for entry in access_list]


def _check_non_negative(tx: Transaction) -> None:
    for name, value in vars(tx).items():
        if isinstance(value, int) and not isinstance(value, bool) and value < 0:
            raise InvalidTransactionError(f"Field {name} must be non-negative, got {value}")


def _fields(tx: Transaction) -> list:
    _check_non_negative(tx)
    data = to_bytes(tx.data)
    if isinstance(tx, LegacyTransaction):
        return [tx.nonce, tx.gas_price, tx.gas, _to_field(tx.to), tx.value, data]
    if isinstance(tx, AccessListTransaction):
        return [
            tx.chain_id, tx.nonce, tx.gas_price, tx.gas, _to_field(tx.to),
            tx.value, data, _access_list_field(tx.access_list),
        ]
    if isinstance(tx, FeeMarketTransaction):
        return [
            tx.chain_id, tx.nonce, tx.max_priority_fee_per_gas, tx.max_fee_per_gas,
            tx.gas, _to_field(tx.to), tx.value, data, _access_list_field(tx.access_list),
        ]
    if isinstance(tx, BlobTransaction):
        if tx.to is None:
            raise InvalidTransactionError("Blob transactions cannot create contracts")
        if not tx.blob_versioned_hashes:
            raise InvalidTransactionError("Blob transactions need at least one versioned hash")
        hashes = [to_bytes(h) for h in tx.blob_versioned_hashes]
        if any(len(h) != 32 for h in hashes):
            raise InvalidTransactionError("Blob versioned hashes must be 32 bytes")
        return [
            tx.chain_id, tx.nonce, tx.max_priority_fee_per_gas, tx.max_fee_per_gas,
            tx.gas, _to_field(tx.to), tx.value, data, _access_list_field(tx.access_list),
            tx.max_fee_per_blob_gas, hashes,
        ]
    raise InvalidTransactionError(f"Unknown transaction object: {type(tx).__name__}")


def serialize_unsigned(tx: Transaction) -> bytes:
    """Signing pre-image: type prefix (if any) plus RLP of the unsigned fields."""
    fields = _fields(tx)
    tx_type = transaction_type(tx)
    if tx_type is None:
        if tx.chain_id is not None:
            fields += [tx.chain_id, 0, 0]
        return rlp.encode(fields)
    return bytes([tx_type]) + rlp.encode(fields)


def signing_hash(tx: Transaction) -> bytes:
    return keccak256(serialize_unsigned(tx))


def serialize_signed(tx: Transaction, signature: Signature) -> bytes:
    """Final wire payload with the signature attached."""
    fields = _fields(tx)
    tx_type = transaction_type(tx)
    if tx_type is None:
        v = signature.legacy_v(tx.chain_id)
        return rlp.encode(fields + [v, signature.r, signature.s])
    signed_fields = fields + [signature.y_parity, signature.r, signature.s]
    if isinstance(tx, BlobTransaction) and tx.blobs:
        if not len(tx.blobs) == len(tx.commitments) == len(tx.proofs):
            raise InvalidTransactionError("Blob sidecar lists must have equal length")
        wrapper = [
            signed_fields,
            [to_bytes(b) for b in tx.blobs],
            [to_bytes(c) for c in tx.commitments],
            [to_bytes(p) for p in tx.proofs],
        ]
        return bytes([tx_type]) + rlp.encode(wrapper)
    return bytes([tx_type]) + rlp.encode(signed_fields)


def sign_transaction(tx: Transaction, signer: HashSigner) -> bytes:
    signature = signer.sign_hash(signing_hash(tx))
    return serialize_signed(tx, signature)


def transaction_hash(raw: bytes | str) -> bytes:
    """Hash of a signed payload, as reported by nodes.

    For blob transactions in network form the hash covers only the
    transaction body, not the sidecar.
    """
    payload = to_bytes(raw)
    if payload[:1] == bytes([BLOB_TX_TYPE]):
        decoded = _decode_list(payload[1:])
        if decoded and isinstance(decoded[0], list):
            return keccak256(bytes([BLOB_TX_TYPE]) + rlp.encode(decoded[0]))
    return keccak256(payload)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _decode_list(payload: bytes) -> list:
    try:
        decoded = rlp.decode(payload)
    except MalformedRlpError as exc:
        raise InvalidTransactionError(f"Malformed transaction RLP: {exc}") from exc
    if not isinstance(decoded, list):
        raise InvalidTransactionError("Transaction payload is not an RLP list")
    return decoded


def _int(item) -> int:
    if not isinstance(item, bytes):
        raise InvalidTransactionError("Expected integer field, got list")
    try:
        return rlp.decode_int(item)
    except MalformedRlpError as exc:
        raise InvalidTransactionError(str(exc)) from exc


def _bytes(item) -> bytes:
    if not isinstance(item, bytes):
        raise InvalidTransactionError("Expected byte string field, got list")
    return item


def _address(item) -> str | None:
    raw = _bytes(item)
    if not raw:
        return None
    if len(raw) != 20:
        raise InvalidTransactionError(f"Address field must be 20 bytes, got {len(raw)}")
    return to_checksum_address(raw)


def _access_list(item) -> AccessList:
    if not isinstance(item, list):
        raise InvalidTransactionError("Access list must be an RLP list")
    entries = []
    for entry in item:
        if not isinstance(entry, list) or len(entry) != 2 or not isinstance(entry[1], list):
            raise InvalidTransactionError("Malformed access list entry")
        address = _address(entry[0])
        if address is None:
            raise InvalidTransactionError("Access list entry has empty address")
        entries.append(AccessListEntry(address, tuple(_bytes(k) for k in entry[1])))
    return tuple(entries)


def _signature(items: list) -> Signature:
    y_parity, r, s = (_int(i) for i in items)
    if y_parity not in (0, 1):
        raise InvalidTransactionError(f"Invalid y_parity: {y_parity}")
    return Signature(r=r, s=s, y_parity=y_parity)


def parse_transaction(raw: bytes | str) -> tuple[Transaction, Signature | None]:
    """Parse an unsigned or signed payload into ``(transaction, signature)``."""
    payload = to_bytes(raw)
    if not payload:
        raise InvalidTransactionError("Empty transaction payload")
    first = payload[0]
    if first >= 0xC0:
        return _parse_legacy(_decode_list(payload))
    if first == ACCESS_LIST_TX_TYPE:
        return _parse_typed(first, _decode_list(payload[1:]), 8)
    if first == FEE_MARKET_TX_TYPE:
        return _parse_typed(first, _decode_list(payload[1:]), 9)
    if first == BLOB_TX_TYPE:
        items = _decode_list(payload[1:])
        if items and isinstance(items[0], list):
            if len(items) != 4:
                raise InvalidTransactionError("Blob network wrapper must have 4 elements")
            tx, signature = _parse_typed(first, items[0], 11)
            sidecar = [[_bytes(x) for x in part] for part in items[1:]]
            tx = BlobTransaction(**{
                **vars(tx),
                "blobs": tuple(sidecar[0]),
                "commitments": tuple(sidecar[1]),
                "proofs": tuple(sidecar[2]),
            })
            return tx, signature
        return _parse_typed(first, items, 11)
    raise InvalidTransactionError(f"Unsupported transaction type: 0x{first:02x}")


def _parse_legacy(items: list) -> tuple[LegacyTransaction, Signature | None]:
    if len(items) == 6:
        chain_id = None
        signature = None
    elif len(items) == 9:
        v, r, s = (_int(i) for i in items[6:])
        if r == 0 and s == 0:
            # EIP-155 signing pre-image: [..., chainId, 0, 0]
            chain_id = v
            signature = None
        else:
            parity, chain_id = split_legacy_v(v)
            signature = Signature(r=r, s=s, y_parity=parity)
    else:
        raise InvalidTransactionError(f"Legacy transaction has {len(items)} fields")
    tx = LegacyTransaction(
        nonce=_int(items[0]),
        gas_price=_int(items[1]),
        gas=_int(items[2]),
        to=_address(items[3]),
        value=_int(items[4]),
        data=_bytes(items[5]),
        chain_id=chain_id,
    )
    return tx, signature


def _parse_typed(tx_type: int, items: list, field_count: int) -> tuple[Transaction, Signature | None]:
    if len(items) == field_count:
        signature = None
    elif len(items) == field_count + 3:
        signature = _signature(items[field_count:])
    else:
        raise InvalidTransactionError(
            f"Type 0x{tx_type:02x} transaction has {len(items)} fields"
        )
    if tx_type == ACCESS_LIST_TX_TYPE:
        tx: Transaction = AccessListTransaction(
            chain_id=_int(items[0]),
            nonce=_int(items[1]),
            gas_price=_int(items[2]),
            gas=_int(items[3]),
            to=_address(items[4]),
            value=_int(items[5]),
            data=_bytes(items[6]),
            access_list=_access_list(items[7]),
        )
        return tx, signature
    common = dict(
        chain_id=_int(items[0]),
        nonce=_int(items[1]),
        max_priority_fee_per_gas=_int(items[2]),
        max_fee_per_gas=_int(items[3]),
        gas=_int(items[4]),
        to=_address(items[5]),
        value=_int(items[6]),
        data=_bytes(items[7]),
        access_list=_access_list(items[8]),
    )
    if tx_type == FEE_MARKET_TX_TYPE:
        return FeeMarketTransaction(**common), signature
    if common["to"] is None:
        raise InvalidTransactionError("Blob transactions cannot create contracts")
    hashes = items[10]
    if not isinstance(hashes, list):
        raise InvalidTransactionError("Blob versioned hashes must be an RLP list")
    tx = BlobTransaction(
        **common,
        max_fee_per_blob_gas=_int(items[9]),
        blob_versioned_hashes=tuple(_bytes(h) for h in hashes),
    )
    return tx, signature


def recover_transaction_sender(raw: bytes | str) -> str:
    """Recover the sender address of a signed payload."""
    tx, signature = parse_transaction(raw)
    if signature is None:
        raise InvalidTransactionError("Transaction is not signed")
    return recover_address(signing_hash(tx), signature)


__all__ = [
    "ACCESS_LIST_TX_TYPE",
    "AccessListEntry",
    "AccessListTransaction",
    "BLOB_TX_TYPE",
    "BlobTransaction",
    "FEE_MARKET_TX_TYPE",
    "FeeMarketTransaction",
    "InvalidTransactionError",
    "LegacyTransaction",
    "Transaction",
    "parse_transaction",
    "recover_transaction_sender",
    "serialize_signed",
    "serialize_unsigned",
    "sign_transaction",
    "signing_hash",
    "transaction_hash",
    "transaction_type",
]
