"""
Transport and JSON-RPC error taxonomy.

``TransportError`` covers faults below the JSON-RPC layer (network, HTTP
status, dropped connection) and says whether a retry could help.
``RpcRequestError`` is a well-formed error response from the node or wallet;
``rpc_error_from_object`` maps its code onto a specific subclass.
"""

from __future__ import annotations

from typing import Any, Mapping


class TransportError(Exception):
    """Raised when a request cannot be carried to the node and back."""

    def __init__(self, message: str, *, retryable: bool = False, attempts: int | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.attempts = attempts


class HttpRequestError(TransportError):
    RETRYABLE_STATUS = frozenset({408, 413, 429, 500, 502, 503, 504})

    def __init__(self, status: int, body: str = "", *, url: str = "") -> None:
        super().__init__(
            f"HTTP {status} from {url or 'endpoint'}: {body[:200]}",
            retryable=status in self.RETRYABLE_STATUS,
        )
        self.status = status
        self.body = body
        self.url = url


class ConnectionLostError(TransportError):
    def __init__(self, message: str = "Connection lost") -> None:
        super().__init__(message, retryable=True)


class NotConnectedError(TransportError):
    def __init__(self, message: str = "Transport is not connected") -> None:
        super().__init__(message, retryable=True)


class RequestCancelledError(TransportError):
    def __init__(self, message: str = "Request cancelled") -> None:
        super().__init__(message, retryable=False)


class RequestTimeoutError(TimeoutError):
    """A request was not fulfilled within its configured duration."""

    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"Request {method} timed out after {timeout}s")
        self.method = method
        self.timeout = timeout


class RpcRequestError(Exception):
    """A JSON-RPC error response carrying the remote code and message."""

    code: int = 0

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(f"RPC error {self.code}: {message}")
        self.message = message
        self.data = data


# EIP-1474 codes
class ParseRpcError(RpcRequestError):
    code = -32700


class InvalidRequestRpcError(RpcRequestError):
    code = -32600


class MethodNotFoundRpcError(RpcRequestError):
    code = -32601


class InvalidParamsRpcError(RpcRequestError):
    code = -32602


class InternalRpcError(RpcRequestError):
    code = -32603


class InvalidInputRpcError(RpcRequestError):
    code = -32000


class ResourceNotFoundRpcError(RpcRequestError):
    code = -32001


class ResourceUnavailableRpcError(RpcRequestError):
    code = -32002


class TransactionRejectedRpcError(RpcRequestError):
    code = -32003


class MethodNotSupportedRpcError(RpcRequestError):
    code = -32004


class LimitExceededRpcError(RpcRequestError):
    code = -32005


class JsonRpcVersionUnsupportedError(RpcRequestError):
    code = -32006


# EIP-1193 provider codes
class UserRejectedRequestError(RpcRequestError):
    code = 4001


class UnauthorizedProviderError(RpcRequestError):
    code = 4100


class UnsupportedProviderMethodError(RpcRequestError):
    code = 4200


class ProviderDisconnectedError(RpcRequestError):
    code = 4900


class ChainDisconnectedError(RpcRequestError):
    code = 4901


class SwitchChainError(RpcRequestError):
    code = 4902


_ERRORS_BY_CODE: dict[int, type[RpcRequestError]] = {
    cls.code: cls
    for cls in (
        ParseRpcError,
        InvalidRequestRpcError,
        MethodNotFoundRpcError,
        InvalidParamsRpcError,
        InternalRpcError,
        InvalidInputRpcError,
        ResourceNotFoundRpcError,
        ResourceUnavailableRpcError,
        TransactionRejectedRpcError,
        MethodNotSupportedRpcError,
        LimitExceededRpcError,
        JsonRpcVersionUnsupportedError,
        UserRejectedRequestError,
        UnauthorizedProviderError,
        UnsupportedProviderMethodError,
        ProviderDisconnectedError,
        ChainDisconnectedError,
        SwitchChainError,
    )
}


def rpc_error_from_object(error: Mapping[str, Any]) -> RpcRequestError:
    code = error.get("code")
    message = error.get("message") or "unknown"
    data = error.get("data")
    if not isinstance(code, int) or isinstance(code, bool):
        return RpcRequestError(str(message), code=-1, data=data)
    cls = _ERRORS_BY_CODE.get(code)
    if cls is None:
        return RpcRequestError(str(message), code=code, data=data)
    return cls(str(message), data=data)


__all__ = [
    "ChainDisconnectedError",
    "ConnectionLostError",
    "HttpRequestError",
    "InternalRpcError",
    "InvalidInputRpcError",
    "InvalidParamsRpcError",
    "InvalidRequestRpcError",
    "JsonRpcVersionUnsupportedError",
    "LimitExceededRpcError",
    "MethodNotFoundRpcError",
    "MethodNotSupportedRpcError",
    "NotConnectedError",
    "ParseRpcError",
    "ProviderDisconnectedError",
    "RequestCancelledError",
    "RequestTimeoutError",
    "ResourceNotFoundRpcError",
    "ResourceUnavailableRpcError",
    "RpcRequestError",
    "SwitchChainError",
    "TransactionRejectedRpcError",
    "TransportError",
    "UnauthorizedProviderError",
    "UnsupportedProviderMethodError",
    "UserRejectedRequestError",
    "rpc_error_from_object",
]
