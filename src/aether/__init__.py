__all__ = [
    # Client
    "Chain",
    "ChainMismatchError",
    "Client",
    "ContractRevertError",
    # Transports
    "BatchOptions",
    "ConnectionState",
    "HttpTransport",
    "RetryPolicy",
    "Subscription",
    "Transport",
    "WebSocketTransport",
    # Transport errors
    "ConnectionLostError",
    "HttpRequestError",
    "NotConnectedError",
    "RequestCancelledError",
    "RequestTimeoutError",
    "RpcRequestError",
    "TransportError",
    # Methods and schemas
    "MethodSpec",
    "ResultKind",
    "RpcMethod",
    "SchemaRegistry",
    "SchemaValidationError",
    "decode_result",
    # Codecs
    "AbiError",
    "MalformedRlpError",
    "decode_parameters",
    "encode_parameters",
    "function_selector",
    # Transactions and signatures
    "AccessListTransaction",
    "BlobTransaction",
    "FeeMarketTransaction",
    "InvalidSignatureError",
    "InvalidTransactionError",
    "LegacyTransaction",
    "LocalSigner",
    "Signature",
    "parse_transaction",
    "recover_address",
    "sign_transaction",
    # Configuration
    "Config",
    "ConfigError",
    "load_config",
]

from .codec.abi import AbiError, decode_parameters, encode_parameters, function_selector
from .codec.rlp import MalformedRlpError
from .config import Config, ConfigError, load_config
from .pneuma.client import Chain, ChainMismatchError, Client, ContractRevertError
from .pneuma.errors import (
    ConnectionLostError,
    HttpRequestError,
    NotConnectedError,
    RequestCancelledError,
    RequestTimeoutError,
    RpcRequestError,
    TransportError,
)
from .pneuma.http import BatchOptions, HttpTransport
from .pneuma.retry import RetryPolicy
from .pneuma.transport import Transport
from .pneuma.websocket import ConnectionState, Subscription, WebSocketTransport
from .sigil.signature import InvalidSignatureError, LocalSigner, Signature, recover_address
from .sigil.transactions import (
    AccessListTransaction,
    BlobTransaction,
    FeeMarketTransaction,
    InvalidTransactionError,
    LegacyTransaction,
    parse_transaction,
    sign_transaction,
)
from .spec.methods import MethodSpec, ResultKind, RpcMethod, decode_result
from .spec.schemas import SchemaRegistry, SchemaValidationError
