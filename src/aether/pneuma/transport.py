"""
Transport base class.

A transport owns one id sequence and one outstanding-request map. Each
attempt of a request gets a fresh id, is bounded by the configured timeout
and is retried according to the transport's ``RetryPolicy``. Subclasses
implement ``_send`` (and ``_send_batch``) to put frames on the wire and
settle the pending entries when responses come back.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

from .errors import RequestCancelledError, RequestTimeoutError, RpcRequestError, TransportError
from .jsonrpc import PendingRequest, PendingRequests, RpcErrorObject, RpcFailure, RpcResponse, RpcSuccess
from .retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class Transport(ABC):
    kind = "base"

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT, retry: RetryPolicy | None = None) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.retry = retry or RetryPolicy()
        self._pending = PendingRequests()
        self._closed = False

    @property
    def pending(self) -> PendingRequests:
        return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    async def request(self, method: str, params: Sequence[Any] | None = None, *, timeout: float | None = None) -> Any:
        """Send one request and return its raw ``result``."""
        self._ensure_open()
        return await with_retry(
            lambda: self._attempt(method, params, timeout),
            self.retry,
            description=method,
        )

    async def request_batch(
        self,
        calls: Sequence[tuple[str, Sequence[Any] | None]],
        *,
        timeout: float | None = None,
    ) -> list[RpcResponse]:
        """Send several requests in one frame; responses come back in call order."""
        self._ensure_open()
        if not calls:
            return []
        return await with_retry(
            lambda: self._attempt_batch(calls, timeout),
            self.retry,
            description=f"batch of {len(calls)}",
        )

    async def _attempt(self, method: str, params: Sequence[Any] | None, timeout: float | None) -> Any:
        timeout = self.timeout if timeout is None else timeout
        entry = self._pending.open(method, params)
        request_id = entry.request.id
        logger.debug("-> %s id=%s params=%s", method, request_id, entry.request.params)
        try:
            return await asyncio.wait_for(self._roundtrip(entry), timeout)
        except asyncio.TimeoutError:
            self._pending.cancel(request_id, f"Timed out after {timeout}s")
            raise RequestTimeoutError(method, timeout) from None
        finally:
            if request_id in self._pending:
                self._pending.cancel(request_id)

    async def _roundtrip(self, entry: PendingRequest) -> Any:
        await self._send(entry)
        return await entry.future

    async def _attempt_batch(
        self,
        calls: Sequence[tuple[str, Sequence[Any] | None]],
        timeout: float | None,
    ) -> list[RpcResponse]:
        timeout = self.timeout if timeout is None else timeout
        entries = [self._pending.open(method, params) for method, params in calls]
        try:
            await asyncio.wait_for(self._batch_roundtrip(entries), timeout)
        except asyncio.TimeoutError:
            for entry in entries:
                self._pending.cancel(entry.request.id, f"Timed out after {timeout}s")
            raise RequestTimeoutError(f"batch of {len(entries)}", timeout) from None
        finally:
            for entry in entries:
                if entry.request.id in self._pending:
                    self._pending.cancel(entry.request.id)

        responses: list[RpcResponse] = []
        for entry in entries:
            exc = entry.future.exception()
            if exc is None:
                responses.append(RpcSuccess(id=entry.request.id, result=entry.future.result()))
            elif isinstance(exc, RpcRequestError):
                responses.append(RpcFailure(
                    id=entry.request.id,
                    error=RpcErrorObject(code=exc.code, message=exc.message, data=exc.data),
                ))
            else:
                raise exc
        return responses

    async def _batch_roundtrip(self, entries: list[PendingRequest]) -> None:
        await self._send_batch(entries)
        await asyncio.wait([entry.future for entry in entries])

    @abstractmethod
    async def _send(self, entry: PendingRequest) -> None:
        ...

    async def _send_batch(self, entries: list[PendingRequest]) -> None:
        for entry in entries:
            await self._send(entry)

    async def subscribe(self, *params: Any):
        raise TransportError(f"{self.kind} transport does not support subscriptions")

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportError(f"{self.kind} transport is closed")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        failed = self._pending.fail_all(RequestCancelledError("Transport closed"))
        if failed:
            logger.info("Cancelled %d outstanding request(s) on close", failed)

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


__all__ = ["DEFAULT_TIMEOUT", "Transport"]
