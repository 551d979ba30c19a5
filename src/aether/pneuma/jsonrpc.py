"""
JSON-RPC 2.0 framing and request/response correlation.

``PendingRequests`` is the outstanding-request map shared by the send path
(``open``) and the receive, timeout and teardown paths (``settle``,
``cancel``, ``fail_all``). Id assignment and insertion happen in ``open``
without an intervening await, so they are atomic on the event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Sequence, Union

from .errors import RequestCancelledError, TransportError, rpc_error_from_object

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


@dataclass(frozen=True)
class RpcRequest:
    id: int
    method: str
    params: Sequence[Any] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
            "params": list(self.params),
        }


@dataclass(frozen=True)
class RpcErrorObject:
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


@dataclass(frozen=True)
class RpcSuccess:
    id: Any
    result: Any

    def unwrap(self) -> Any:
        return self.result


@dataclass(frozen=True)
class RpcFailure:
    id: Any
    error: RpcErrorObject

    def unwrap(self) -> Any:
        raise rpc_error_from_object(self.error.to_dict())


RpcResponse = Union[RpcSuccess, RpcFailure]


def is_notification(payload: Mapping[str, Any]) -> bool:
    return "method" in payload and payload.get("id") is None


def parse_response(payload: Any) -> RpcResponse:
    """Validate one response object and return its tagged form."""
    if not isinstance(payload, Mapping):
        raise TransportError(f"Malformed JSON-RPC response: {payload!r}")
    version = payload.get("jsonrpc", JSONRPC_VERSION)
    if version != JSONRPC_VERSION:
        raise TransportError(f"Unsupported JSON-RPC version: {version!r}")
    if "id" not in payload:
        raise TransportError("JSON-RPC response has no id")
    has_result = "result" in payload
    has_error = "error" in payload and payload["error"] is not None
    if has_error:
        error = payload["error"]
        if not isinstance(error, Mapping):
            raise TransportError(f"Malformed JSON-RPC error object: {error!r}")
        code = error.get("code")
        if not isinstance(code, int) or isinstance(code, bool):
            code = -1
        return RpcFailure(
            id=payload["id"],
            error=RpcErrorObject(code=code, message=str(error.get("message", "")), data=error.get("data")),
        )
    if not has_result:
        raise TransportError("JSON-RPC response has neither result nor error")
    return RpcSuccess(id=payload["id"], result=payload["result"])


class RequestState(Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PendingRequest:
    request: RpcRequest
    future: asyncio.Future
    state: RequestState = field(default=RequestState.PENDING)


def _consume_outcome(future: asyncio.Future) -> None:
    # Marks the exception as retrieved when nobody is left awaiting it.
    if not future.cancelled():
        future.exception()


class PendingRequests:
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._entries: dict[Any, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: Any) -> bool:
        return request_id in self._entries

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(list(self._entries.values()))

    def open(self, method: str, params: Sequence[Any] | None = None) -> PendingRequest:
        request = RpcRequest(id=next(self._ids), method=method, params=tuple(params or ()))
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_outcome)
        entry = PendingRequest(request=request, future=future)
        self._entries[request.id] = entry
        return entry

    def settle(self, response: RpcResponse) -> bool:
        """Deliver a response to its waiter; unknown or late ids are dropped."""
        entry = self._entries.pop(response.id, None)
        if entry is None:
            logger.debug("Dropping response for unknown or cancelled request id %r", response.id)
            return False
        if entry.future.done():
            return False
        if isinstance(response, RpcSuccess):
            entry.state = RequestState.FULFILLED
            entry.future.set_result(response.result)
        else:
            entry.state = RequestState.FAILED
            entry.future.set_exception(rpc_error_from_object(response.error.to_dict()))
        return True

    def reject(self, request_id: Any, exc: BaseException) -> bool:
        entry = self._entries.pop(request_id, None)
        if entry is None or entry.future.done():
            return False
        entry.state = RequestState.FAILED
        entry.future.set_exception(exc)
        return True

    def cancel(self, request_id: Any, reason: str = "Request cancelled") -> bool:
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return False
        entry.state = RequestState.CANCELLED
        if not entry.future.done():
            entry.future.set_exception(RequestCancelledError(reason))
        return True

    def fail_all(self, exc: BaseException) -> int:
        failed = 0
        for request_id in list(self._entries):
            if self.reject(request_id, exc):
                failed += 1
        return failed


__all__ = [
    "JSONRPC_VERSION",
    "PendingRequest",
    "PendingRequests",
    "RequestState",
    "RpcErrorObject",
    "RpcFailure",
    "RpcRequest",
    "RpcResponse",
    "RpcSuccess",
    "is_notification",
    "parse_response",
]
