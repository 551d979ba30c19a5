"""
HTTP transport over ``httpx.AsyncClient``.

Each request is one POST carrying a JSON-RPC object. With ``BatchOptions``
enabled, requests issued concurrently are coalesced into a single JSON
array POST once ``size`` requests are queued or ``wait`` seconds pass,
and each response is routed back to its caller by id.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .errors import HttpRequestError, TransportError
from .jsonrpc import PendingRequest, parse_response
from .retry import RetryPolicy
from .transport import DEFAULT_TIMEOUT, Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchOptions:
    size: int = 1000
    wait: float = 0.0

    def __post_init__(self) -> None:
        if self.size < 1:
            raise ValueError("batch size must be >= 1")
        if self.wait < 0:
            raise ValueError("batch wait must be >= 0")


class HttpTransport(Transport):
    kind = "http"

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryPolicy | None = None,
        batch: BatchOptions | None = None,
        headers: Mapping[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, retry=retry)
        if not url:
            raise ValueError("HTTP transport requires a URL")
        self.url = url
        self.batch = batch
        self.headers = dict(headers or {})
        self._client = http_client
        self._owns_client = http_client is None
        self._queued: list[PendingRequest] = []
        self._flush_handle: asyncio.TimerHandle | None = None
        self._flushes: set[asyncio.Task] = set()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Deadlines are enforced per attempt by the transport itself.
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(None))
        return self._client

    async def _post(self, body: Any) -> Any:
        client = self._get_client()
        try:
            response = await client.post(self.url, json=body, headers=self.headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"HTTP request to {self.url} failed: {exc}", retryable=True) from exc
        if response.status_code < 200 or response.status_code >= 300:
            raise HttpRequestError(response.status_code, response.text, url=self.url)
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"Endpoint returned invalid JSON: {exc}") from exc

    async def _send(self, entry: PendingRequest) -> None:
        if self.batch is not None:
            self._enqueue(entry)
            return
        payload = await self._post(entry.request.to_dict())
        if isinstance(payload, list):
            raise TransportError("Endpoint answered a single request with a batch")
        response = parse_response(payload)
        if response.id != entry.request.id:
            raise TransportError(
                f"Response id {response.id!r} does not match request id {entry.request.id!r}"
            )
        self._pending.settle(response)

    async def _send_batch(self, entries: list[PendingRequest]) -> None:
        await self._post_batch(entries)

    async def _post_batch(self, entries: list[PendingRequest]) -> None:
        logger.debug("POST batch of %d request(s) to %s", len(entries), self.url)
        payload = await self._post([entry.request.to_dict() for entry in entries])
        if isinstance(payload, Mapping):
            # Some nodes reject a whole batch with a single error object.
            if parse_response(payload).id is None:
                raise TransportError(f"Endpoint rejected batch: {payload.get('error')!r}")
            payload = [payload]
        if not isinstance(payload, list):
            raise TransportError(f"Malformed batch response: {payload!r}")

        expected = {entry.request.id for entry in entries}
        for item in payload:
            response = parse_response(item)
            if response.id not in expected:
                logger.warning("Dropping batch response with unexpected id %r", response.id)
                continue
            self._pending.settle(response)
        for entry in entries:
            self._pending.reject(
                entry.request.id,
                TransportError(f"Batch response is missing id {entry.request.id!r}"),
            )

    def _enqueue(self, entry: PendingRequest) -> None:
        assert self.batch is not None
        self._queued.append(entry)
        if len(self._queued) >= self.batch.size:
            self._schedule_flush()
        elif self._flush_handle is None:
            loop = asyncio.get_running_loop()
            self._flush_handle = loop.call_later(self.batch.wait, self._schedule_flush)

    def _schedule_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        entries, self._queued = self._queued, []
        # Entries that timed out or were cancelled while queued are skipped.
        entries = [entry for entry in entries if entry.request.id in self._pending]
        if not entries:
            return
        task = asyncio.get_running_loop().create_task(self._flush(entries))
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)

    async def _flush(self, entries: list[PendingRequest]) -> None:
        try:
            await self._post_batch(entries)
        except (TransportError, httpx.HTTPError) as exc:
            for entry in entries:
                self._pending.reject(entry.request.id, exc)

    async def close(self) -> None:
        if self._closed:
            return
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._queued.clear()
        for task in list(self._flushes):
            task.cancel()
        await super().close()
        if self._client is not None and self._owns_client:
            await self._client.aclose()


__all__ = ["BatchOptions", "HttpTransport"]
