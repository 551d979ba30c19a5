"""
Contract ABI codec.

Parses Solidity-style type strings (or ABI JSON parameters) into a type tree
that validates values up front; the head/tail layout itself is produced and
read back by ``eth_abi`` in strict mode. Also computes function selectors and event
topics, and decodes calldata results, event logs and revert data.

Value mapping:
    uint<N>/int<N>  -> int
    address         -> checksummed str (bytes accepted on encode)
    bool            -> bool
    bytes<N>/bytes  -> bytes (hex str accepted on encode; bytes<N> must be N long)
    function        -> bytes (24)
    string          -> str
    T[]/T[k]/tuple  -> tuple (any sequence accepted on encode; tuples with
                       named components also accept a dict)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Sequence

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError

from ..utils import (
    InvalidHexError,
    hex_to_bytes,
    is_address,
    keccak256,
    to_bytes,
    to_checksum_address,
)


class AbiError(ValueError):
    pass


class AbiTypeError(AbiError):
    pass


class AbiEncodingError(AbiError):
    pass


class AbiDecodingError(AbiError):
    pass


# ---------------------------------------------------------------------------
# Type tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AbiType:
    @property
    def canonical(self) -> str:
        raise NotImplementedError

    @property
    def is_dynamic(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.canonical


@dataclass(frozen=True)
class UIntType(AbiType):
    bits: int

    @property
    def canonical(self) -> str:
        return f"uint{self.bits}"


@dataclass(frozen=True)
class IntType(AbiType):
    bits: int

    @property
    def canonical(self) -> str:
        return f"int{self.bits}"


@dataclass(frozen=True)
class AddressType(AbiType):
    @property
    def canonical(self) -> str:
        return "address"


@dataclass(frozen=True)
class BoolType(AbiType):
    @property
    def canonical(self) -> str:
        return "bool"


@dataclass(frozen=True)
class FixedBytesType(AbiType):
    size: int

    @property
    def canonical(self) -> str:
        return f"bytes{self.size}"


@dataclass(frozen=True)
class FunctionType(AbiType):
    """An address followed by a selector, stored as bytes24."""

    size = 24

    @property
    def canonical(self) -> str:
        return "function"


@dataclass(frozen=True)
class BytesType(AbiType):
    @property
    def canonical(self) -> str:
        return "bytes"

    @property
    def is_dynamic(self) -> bool:
        return True


@dataclass(frozen=True)
class StringType(AbiType):
    @property
    def canonical(self) -> str:
        return "string"

    @property
    def is_dynamic(self) -> bool:
        return True


@dataclass(frozen=True)
class ArrayType(AbiType):
    item: AbiType
    length: int | None = None

    @property
    def canonical(self) -> str:
        suffix = "" if self.length is None else str(self.length)
        return f"{self.item.canonical}[{suffix}]"

    @property
    def is_dynamic(self) -> bool:
        return self.length is None or self.item.is_dynamic


@dataclass(frozen=True)
class TupleType(AbiType):
    components: tuple[AbiType, ...]
    names: tuple[str, ...] | None = None

    @property
    def canonical(self) -> str:
        return "(" + ",".join(c.canonical for c in self.components) + ")"

    @property
    def is_dynamic(self) -> bool:
        return any(c.is_dynamic for c in self.components)


# ---------------------------------------------------------------------------
# Type parsing
# ---------------------------------------------------------------------------

_ATOMIC_RE = re.compile(r"^(uint|int|bytes|address|bool|string|function)(\d*)$")
_ALIASES = {"uint": "uint256", "int": "int256", "byte": "bytes1"}


def parse_type(type_str: str) -> AbiType:
    """Parse a canonical type string such as ``(uint256,address[])[2]``."""
    if not isinstance(type_str, str):
        raise AbiTypeError(f"Type must be a string, got {type(type_str).__name__}")
    return _parse_type_cached(type_str.replace(" ", ""))


@lru_cache(maxsize=512)
def _parse_type_cached(type_str: str) -> AbiType:
    if not type_str:
        raise AbiTypeError("Empty type string")
    base, dims = _split_array_suffix(type_str)
    if base.startswith("("):
        if not base.endswith(")"):
            raise AbiTypeError(f"Malformed tuple type: {type_str}")
        inner = base[1:-1]
        parts = _split_top_level(inner) if inner else []
        abi_type: AbiType = TupleType(tuple(_parse_type_cached(p) for p in parts))
    else:
        abi_type = _parse_atomic(base)
    return _apply_dims(abi_type, dims)


def _parse_atomic(name: str) -> AbiType:
    name = _ALIASES.get(name, name)
    match = _ATOMIC_RE.match(name)
    if not match:
        raise AbiTypeError(f"Unsupported ABI type: {name}")
    kind, size = match.groups()
    if kind in ("uint", "int"):
        if not size:
            raise AbiTypeError(f"Unsupported ABI type: {name}")
        bits = int(size)
        if bits < 8 or bits > 256 or bits % 8:
            raise AbiTypeError(f"Invalid integer width: {name}")
        return UIntType(bits) if kind == "uint" else IntType(bits)
    if kind == "bytes":
        if not size:
            return BytesType()
        length = int(size)
        if length < 1 or length > 32:
            raise AbiTypeError(f"Invalid fixed bytes size: {name}")
        return FixedBytesType(length)
    if size:
        raise AbiTypeError(f"Unsupported ABI type: {name}")
    return {
        "address": AddressType(),
        "bool": BoolType(),
        "string": StringType(),
        "function": FunctionType(),
    }[kind]


def _split_array_suffix(type_str: str) -> tuple[str, list[int | None]]:
    dims: list[int | None] = []
    rest = type_str
    while rest.endswith("]"):
        start = rest.rfind("[")
        if start == -1:
            raise AbiTypeError(f"Unbalanced brackets: {type_str}")
        dim = rest[start + 1:-1]
        if dim == "":
            dims.append(None)
        elif dim.isdigit() and int(dim) > 0:
            dims.append(int(dim))
        else:
            raise AbiTypeError(f"Invalid array dimension '{dim}' in {type_str}")
        rest = rest[:start]
    dims.reverse()
    return rest, dims


def _apply_dims(abi_type: AbiType, dims: list[int | None]) -> AbiType:
    for dim in dims:
        abi_type = ArrayType(abi_type, dim)
    return abi_type


def _split_top_level(inner: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for ch in inner:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise AbiTypeError(f"Unbalanced parentheses: ({inner})")
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    if depth != 0:
        raise AbiTypeError(f"Unbalanced parentheses: ({inner})")
    parts.append(current)
    if any(not p for p in parts):
        raise AbiTypeError(f"Empty component in tuple: ({inner})")
    return parts


def type_from_abi(param: Mapping[str, Any]) -> AbiType:
    """Build a type from an ABI JSON parameter (``type`` plus ``components``)."""
    type_str = param.get("type")
    if not isinstance(type_str, str):
        raise AbiTypeError(f"ABI parameter has no type: {param!r}")
    if type_str.startswith("tuple"):
        components = param.get("components")
        if components is None:
            raise AbiTypeError(f"Tuple parameter without components: {param!r}")
        inner = TupleType(
            tuple(type_from_abi(c) for c in components),
            tuple(c.get("name", "") for c in components),
        )
        base, dims = _split_array_suffix(type_str)
        if base != "tuple":
            raise AbiTypeError(f"Malformed tuple type: {type_str}")
        return _apply_dims(inner, dims)
    return parse_type(type_str)


def _coerce_types(types: Sequence[AbiType | str | Mapping[str, Any]]) -> TupleType:
    resolved = []
    names = []
    for t in types:
        if isinstance(t, AbiType):
            resolved.append(t)
            names.append("")
        elif isinstance(t, str):
            resolved.append(parse_type(t))
            names.append("")
        elif isinstance(t, Mapping):
            resolved.append(type_from_abi(t))
            names.append(t.get("name", ""))
        else:
            raise AbiTypeError(f"Cannot interpret ABI type: {t!r}")
    return TupleType(tuple(resolved), tuple(names))


# ---------------------------------------------------------------------------
# Encoding and decoding
# ---------------------------------------------------------------------------


def encode_parameters(types: Sequence[AbiType | str | Mapping[str, Any]], values: Sequence[Any]) -> bytes:
    """ABI-encode ``values`` as the tuple described by ``types``.

    Values are checked and normalized against the parsed type tree first,
    then handed to ``eth_abi`` for the head/tail layout.
    """
    tuple_type = _coerce_types(types)
    prepared = _prepare(tuple_type, values)
    try:
        return encode([_codec_type(c) for c in tuple_type.components], prepared)
    except EncodingError as exc:
        raise AbiEncodingError(str(exc)) from exc


def decode_parameters(types: Sequence[AbiType | str | Mapping[str, Any]], data: bytes | str) -> tuple:
    """Decode ABI data into a tuple of values matching ``types``."""
    tuple_type = _coerce_types(types)
    try:
        raw = hex_to_bytes(data) if isinstance(data, str) else bytes(data)
    except InvalidHexError as exc:
        raise AbiDecodingError(str(exc)) from exc
    try:
        return decode([_codec_type(c) for c in tuple_type.components], raw)
    except (DecodingError, UnicodeDecodeError) as exc:
        raise AbiDecodingError(str(exc)) from exc


def _codec_type(abi_type: AbiType) -> str:
    if isinstance(abi_type, FunctionType):
        return "bytes24"
    if isinstance(abi_type, ArrayType):
        suffix = "" if abi_type.length is None else str(abi_type.length)
        return f"{_codec_type(abi_type.item)}[{suffix}]"
    if isinstance(abi_type, TupleType):
        return "(" + ",".join(_codec_type(c) for c in abi_type.components) + ")"
    return abi_type.canonical


def _prepare(abi_type: AbiType, value: Any) -> Any:
    if isinstance(abi_type, (UIntType, IntType)):
        return _require_int(abi_type, value)
    if isinstance(abi_type, AddressType):
        return to_checksum_address(_address_bytes(value))
    if isinstance(abi_type, BoolType):
        if not isinstance(value, bool):
            raise AbiEncodingError(f"Expected bool, got {type(value).__name__}")
        return value
    if isinstance(abi_type, (FixedBytesType, FunctionType)):
        data = _bytes_value(abi_type, value)
        # Shorter values would come back padded, so only exact sizes are accepted.
        if len(data) != abi_type.size:
            raise AbiEncodingError(
                f"{abi_type} expects exactly {abi_type.size} bytes, got {len(data)}"
            )
        return data
    if isinstance(abi_type, BytesType):
        return _bytes_value(abi_type, value)
    if isinstance(abi_type, StringType):
        if not isinstance(value, str):
            raise AbiEncodingError(f"Expected str, got {type(value).__name__}")
        return value
    if isinstance(abi_type, ArrayType):
        items = _sequence_value(abi_type, value)
        if abi_type.length is not None and len(items) != abi_type.length:
            raise AbiEncodingError(
                f"{abi_type} expects {abi_type.length} items, got {len(items)}"
            )
        return tuple(_prepare(abi_type.item, item) for item in items)
    if isinstance(abi_type, TupleType):
        items = _tuple_value(abi_type, value)
        return tuple(_prepare(c, item) for c, item in zip(abi_type.components, items))
    raise AbiEncodingError(f"Unsupported type: {abi_type!r}")


def _require_int(abi_type: AbiType, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise AbiEncodingError(f"{abi_type} expects int, got {type(value).__name__}")
    return value


def _address_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)) and len(value) == 20:
        return bytes(value)
    if is_address(value):
        return bytes.fromhex(value[2:])
    raise AbiEncodingError(f"Invalid address: {value!r}")


def _bytes_value(abi_type: AbiType, value: Any) -> bytes:
    try:
        return to_bytes(value)
    except (TypeError, ValueError) as exc:
        raise AbiEncodingError(f"{abi_type} expects bytes or hex str: {exc}") from exc


def _sequence_value(abi_type: AbiType, value: Any) -> Sequence[Any]:
    if isinstance(value, (str, bytes, bytearray, Mapping)) or not isinstance(value, Sequence):
        raise AbiEncodingError(f"{abi_type} expects a sequence, got {type(value).__name__}")
    return value


def _tuple_value(abi_type: TupleType, value: Any) -> Sequence[Any]:
    if isinstance(value, Mapping):
        names = abi_type.names or ()
        if len(names) != len(abi_type.components) or not all(names):
            raise AbiEncodingError(f"{abi_type} has unnamed components; pass a sequence")
        missing = [n for n in names if n not in value]
        if missing:
            raise AbiEncodingError(f"Missing tuple fields: {', '.join(missing)}")
        return [value[n] for n in names]
    items = _sequence_value(abi_type, value)
    if len(items) != len(abi_type.components):
        raise AbiEncodingError(
            f"{abi_type} expects {len(abi_type.components)} values, got {len(items)}"
        )
    return items


# ---------------------------------------------------------------------------
# Signatures and selectors
# ---------------------------------------------------------------------------

_QUALIFIERS = {"memory", "calldata", "storage", "indexed", "payable"}
_KEYWORDS = ("function", "event", "error", "constructor")


def signature_of(item: Mapping[str, Any]) -> str:
    """Canonical ``name(type,...)`` string for an ABI JSON item."""
    name = item.get("name")
    if not name:
        raise AbiTypeError(f"ABI item has no name: {item!r}")
    types = _coerce_types(item.get("inputs", []))
    return f"{name}{types.canonical}"


def normalize_signature(signature: str) -> str:
    """Reduce a human-readable signature to its canonical form.

    ``function transfer(address to, uint256 amount) external returns (bool)``
    becomes ``transfer(address,uint256)``.
    """
    text = signature.strip()
    for keyword in _KEYWORDS:
        if text.startswith(keyword + " "):
            text = text[len(keyword) + 1:].lstrip()
            break
    open_idx = text.find("(")
    if open_idx <= 0:
        raise AbiTypeError(f"Malformed signature: {signature}")
    name = text[:open_idx].strip()
    close_idx = _matching_paren(text, open_idx)
    inner = text[open_idx + 1:close_idx]
    params = _split_top_level(inner) if inner.strip() else []
    canonical = [_normalize_param(p) for p in params]
    return f"{name}({','.join(canonical)})"


def _matching_paren(text: str, open_idx: int) -> int:
    depth = 0
    for idx in range(open_idx, len(text)):
        if text[idx] == "(":
            depth += 1
        elif text[idx] == ")":
            depth -= 1
            if depth == 0:
                return idx
    raise AbiTypeError(f"Unbalanced parentheses: {text}")


def _normalize_param(param: str) -> str:
    param = param.strip()
    if param.startswith("tuple("):
        param = param[len("tuple"):]
    if param.startswith("("):
        close_idx = _matching_paren(param, 0)
        inner = param[1:close_idx]
        parts = _split_top_level(inner) if inner.strip() else []
        rest = param[close_idx + 1:].split()
        suffix = rest[0] if rest and rest[0].startswith("[") else ""
        type_str = "(" + ",".join(_normalize_param(p) for p in parts) + ")" + suffix
    else:
        tokens = [t for t in param.split() if t not in _QUALIFIERS]
        if not tokens:
            raise AbiTypeError(f"Empty parameter in signature: {param!r}")
        type_str = tokens[0]
    return parse_type(type_str).canonical


def function_selector(signature: str | Mapping[str, Any]) -> bytes:
    """First 4 bytes of keccak256 of the canonical signature."""
    return _signature_hash(signature)[:4]


def event_topic(signature: str | Mapping[str, Any]) -> bytes:
    """Full 32-byte keccak256 of the canonical event signature."""
    return _signature_hash(signature)


def _signature_hash(signature: str | Mapping[str, Any]) -> bytes:
    if isinstance(signature, Mapping):
        canonical = signature_of(signature)
    else:
        canonical = normalize_signature(signature)
    return keccak256(canonical.encode("utf-8"))


# ---------------------------------------------------------------------------
# Contract helpers
# ---------------------------------------------------------------------------


def find_abi_item(
    abi: Sequence[Mapping[str, Any]],
    name: str,
    kind: str = "function",
    args: Sequence[Any] | None = None,
) -> Mapping[str, Any]:
    """Find an ABI entry by name, disambiguating overloads by argument count."""
    candidates = [e for e in abi if e.get("type") == kind and e.get("name") == name]
    if args is not None and len(candidates) > 1:
        candidates = [e for e in candidates if len(e.get("inputs", [])) == len(args)]
    if not candidates:
        raise AbiError(f"{kind.capitalize()} {name} not found in ABI")
    if len(candidates) > 1:
        raise AbiError(f"Ambiguous {kind} {name}: {len(candidates)} overloads match")
    return candidates[0]


def encode_function_data(abi: Sequence[Mapping[str, Any]], function_name: str, args: Sequence[Any] = ()) -> bytes:
    func = find_abi_item(abi, function_name, args=args)
    return function_selector(func) + encode_parameters(func.get("inputs", []), args)


def decode_function_result(abi: Sequence[Mapping[str, Any]], function_name: str, data: bytes | str) -> Any:
    """Decode return data; a single output is unwrapped, none yields ``None``."""
    func = find_abi_item(abi, function_name)
    outputs = func.get("outputs", [])
    if not outputs:
        return None
    decoded = decode_parameters(outputs, data)
    if len(decoded) == 1:
        return decoded[0]
    return decoded


def encode_deploy_data(abi: Sequence[Mapping[str, Any]], bytecode: bytes | str, args: Sequence[Any] = ()) -> bytes:
    code = to_bytes(bytecode if not isinstance(bytecode, str) or bytecode.startswith("0x") else "0x" + bytecode)
    if not args:
        return code
    constructor = next((e for e in abi if e.get("type") == "constructor"), None)
    if constructor is None:
        raise AbiError("Constructor not found in ABI, but constructor args were provided")
    return code + encode_parameters(constructor.get("inputs", []), args)


@dataclass(frozen=True)
class DecodedEvent:
    name: str
    args: dict[str, Any]


def decode_event_log(
    abi: Sequence[Mapping[str, Any]],
    topics: Sequence[bytes | str],
    data: bytes | str,
) -> DecodedEvent:
    """Decode a log entry against the events in ``abi``.

    Indexed dynamic values (strings, bytes, arrays, tuples) are stored as
    their keccak hash in the topic, so they come back as the raw 32 bytes.
    """
    if not topics:
        raise AbiDecodingError("Log has no topics; anonymous events are not supported")
    topic_bytes = [to_bytes(t) for t in topics]
    event = None
    for entry in abi:
        if entry.get("type") == "event" and not entry.get("anonymous") and event_topic(entry) == topic_bytes[0]:
            event = entry
            break
    if event is None:
        raise AbiDecodingError(f"No event in ABI matches topic 0x{topic_bytes[0].hex()}")

    inputs = event.get("inputs", [])
    indexed = [p for p in inputs if p.get("indexed")]
    if len(indexed) != len(topic_bytes) - 1:
        raise AbiDecodingError(
            f"Event {event['name']} expects {len(indexed)} indexed topics, got {len(topic_bytes) - 1}"
        )
    non_indexed = [p for p in inputs if not p.get("indexed")]
    body = decode_parameters(non_indexed, data) if non_indexed else ()

    args: dict[str, Any] = {}
    topic_iter = iter(topic_bytes[1:])
    body_iter = iter(body)
    for position, param in enumerate(inputs):
        key = param.get("name") or str(position)
        if param.get("indexed"):
            topic = next(topic_iter)
            abi_type = type_from_abi(param)
            if abi_type.is_dynamic or isinstance(abi_type, (ArrayType, TupleType)):
                args[key] = topic
            else:
                (args[key],) = decode_parameters([abi_type], topic)
        else:
            args[key] = next(body_iter)
    return DecodedEvent(name=event["name"], args=args)


ERROR_SELECTOR = function_selector("Error(string)")
PANIC_SELECTOR = function_selector("Panic(uint256)")

PANIC_CODES = {
    0x00: "Generic compiler panic",
    0x01: "Assertion failed",
    0x11: "Arithmetic overflow/underflow",
    0x12: "Division by zero",
    0x21: "Invalid enum value",
    0x22: "Invalid storage byte array encoding",
    0x31: "Pop on empty array",
    0x32: "Array index out of bounds",
    0x41: "Memory allocation failed",
    0x51: "Zero-initialized function pointer",
}


@dataclass(frozen=True)
class DecodedError:
    name: str
    args: tuple
    message: str


def decode_error_result(data: bytes | str, abi: Sequence[Mapping[str, Any]] | None = None) -> DecodedError:
    """Decode revert data: ``Error(string)``, ``Panic(uint256)`` or a custom error."""
    raw = to_bytes(data)
    if len(raw) < 4:
        raise AbiDecodingError("Revert data shorter than a selector")
    selector, payload = raw[:4], raw[4:]
    if selector == ERROR_SELECTOR:
        (reason,) = decode_parameters(["string"], payload)
        return DecodedError("Error", (reason,), reason)
    if selector == PANIC_SELECTOR:
        (code,) = decode_parameters(["uint256"], payload)
        return DecodedError("Panic", (code,), PANIC_CODES.get(code, f"Panic({code})"))
    for entry in abi or ():
        if entry.get("type") == "error" and function_selector(entry) == selector:
            args = decode_parameters(entry.get("inputs", []), payload)
            return DecodedError(entry["name"], args, signature_of(entry))
    raise AbiDecodingError(f"Unknown error selector 0x{selector.hex()}")


__all__ = [
    "AbiDecodingError",
    "AbiEncodingError",
    "AbiError",
    "AbiType",
    "AbiTypeError",
    "AddressType",
    "ArrayType",
    "BoolType",
    "BytesType",
    "DecodedError",
    "DecodedEvent",
    "FixedBytesType",
    "FunctionType",
    "IntType",
    "StringType",
    "TupleType",
    "UIntType",
    "decode_error_result",
    "decode_event_log",
    "decode_function_result",
    "decode_parameters",
    "encode_deploy_data",
    "encode_function_data",
    "encode_parameters",
    "event_topic",
    "find_abi_item",
    "function_selector",
    "normalize_signature",
    "parse_type",
    "signature_of",
]
