"""
WebSocket transport.

One long-lived connection carries many concurrent requests. A reader task
routes each incoming frame by id to its waiter, or by subscription id to
the matching ``Subscription``. Requests issued while the connection is not
open are queued (bounded) and flushed once it opens, or fail fast with
``NotConnectedError`` when queueing is disabled. When the connection drops,
every outstanding request fails with ``ConnectionLostError`` and, if enabled,
the transport reconnects with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict, deque
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

import websockets

from .errors import ConnectionLostError, NotConnectedError, RequestCancelledError, TransportError
from .jsonrpc import PendingRequest, is_notification, parse_response
from .retry import RetryPolicy
from .transport import DEFAULT_TIMEOUT, Transport

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]

# Notifications for subscription ids not yet registered are held briefly,
# since a node may push the first event before eth_subscribe's response.
ORPHAN_SUBSCRIPTIONS_MAX = 32
ORPHAN_NOTIFICATIONS_MAX = 64


class ConnectionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


_END = object()


class Subscription:
    """Async iterator over the notifications of one ``eth_subscribe`` stream."""

    def __init__(self, transport: "WebSocketTransport", subscription_id: str, maxsize: int = 1000) -> None:
        self.id = subscription_id
        self._transport = transport
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._error: BaseException | None = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def _push(self, result: Any) -> None:
        if not self._active:
            return
        if self._queue.full():
            logger.warning("Subscription %s is not being consumed; dropping oldest event", self.id)
            self._queue.get_nowait()
        self._queue.put_nowait(result)

    def _finish(self, error: BaseException | None = None) -> None:
        if not self._active:
            return
        self._active = False
        self._error = error
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _END:
            # Re-arm the sentinel so repeated iteration keeps terminating.
            self._queue.put_nowait(_END)
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item

    async def unsubscribe(self) -> bool:
        return await self._transport.unsubscribe(self)

    def __repr__(self) -> str:
        return f"Subscription(id={self.id!r}, active={self._active})"


class WebSocketTransport(Transport):
    kind = "websocket"

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retry: RetryPolicy | None = None,
        queue_size: int = 100,
        reconnect: bool = True,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        keepalive: float | None = 30.0,
        connector: Connector | None = None,
    ) -> None:
        super().__init__(timeout=timeout, retry=retry)
        if not url:
            raise ValueError("WebSocket transport requires a URL")
        if queue_size < 0:
            raise ValueError("queue_size must be >= 0")
        self.url = url
        self.queue_size = queue_size
        self.reconnect = reconnect
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.keepalive = keepalive
        self._connector = connector or websockets.connect
        self._state = ConnectionState.CLOSED
        self._ws: Any = None
        self._reader: asyncio.Task | None = None
        self._reconnector: asyncio.Task | None = None
        self._connect_lock = asyncio.Lock()
        self._queue: deque[PendingRequest] = deque()
        self._subscriptions: dict[str, Subscription] = {}
        self._orphans: OrderedDict[str, deque] = OrderedDict()

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> None:
        self._ensure_open()
        async with self._connect_lock:
            if self._state is ConnectionState.OPEN:
                return
            self._state = ConnectionState.CONNECTING
            try:
                await self._open_connection()
            except TransportError:
                self._state = ConnectionState.CLOSED
                self._fail_queued(ConnectionLostError(f"Could not connect to {self.url}"))
                raise
            finally:
                # A cancelled connect must not leave the transport stuck in CONNECTING.
                if self._state is ConnectionState.CONNECTING:
                    self._state = ConnectionState.CLOSED

    async def _open_connection(self) -> None:
        kwargs: dict[str, Any] = {}
        if self._connector is websockets.connect:
            kwargs = {"ping_interval": self.keepalive, "ping_timeout": self.keepalive}
        try:
            ws = await self._connector(self.url, **kwargs)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            raise TransportError(f"WebSocket connect to {self.url} failed: {exc}", retryable=True) from exc
        self._ws = ws
        self._state = ConnectionState.OPEN
        logger.info("WebSocket connected to %s", self.url)
        self._reader = asyncio.get_running_loop().create_task(self._read_loop(ws))
        await self._flush_queue()

    async def _send(self, entry: PendingRequest) -> None:
        if self._state is ConnectionState.CLOSED:
            await self.connect()
        if self._state is ConnectionState.OPEN:
            await self._write(entry.request.to_dict())
            return
        self._prune_queue()
        if len(self._queue) >= self.queue_size:
            raise NotConnectedError(
                f"WebSocket is {self._state.value}; request queue is full or disabled"
            )
        self._queue.append(entry)

    async def _send_batch(self, entries: list[PendingRequest]) -> None:
        if self._state is ConnectionState.CLOSED:
            await self.connect()
        if self._state is not ConnectionState.OPEN:
            for entry in entries:
                await self._send(entry)
            return
        await self._write([entry.request.to_dict() for entry in entries])

    async def _write(self, payload: Any) -> None:
        ws = self._ws
        if ws is None:
            raise NotConnectedError()
        try:
            await ws.send(json.dumps(payload))
        except (OSError, websockets.WebSocketException) as exc:
            raise ConnectionLostError(f"WebSocket send failed: {exc}") from exc

    async def _flush_queue(self) -> None:
        while self._queue and self._state is ConnectionState.OPEN:
            entry = self._queue.popleft()
            if entry.request.id not in self._pending:
                continue
            try:
                await self._write(entry.request.to_dict())
            except TransportError as exc:
                self._pending.reject(entry.request.id, exc)

    def _prune_queue(self) -> None:
        """Drop queued entries whose callers already timed out or were cancelled."""
        live = [entry for entry in self._queue if entry.request.id in self._pending]
        if len(live) != len(self._queue):
            self._queue = deque(live)

    def _fail_queued(self, exc: TransportError) -> None:
        while self._queue:
            entry = self._queue.popleft()
            self._pending.reject(entry.request.id, exc)

    async def _read_loop(self, ws: Any) -> None:
        reason = "Connection closed by remote"
        try:
            async for message in ws:
                self._handle_message(message)
        except (OSError, websockets.WebSocketException) as exc:
            reason = f"Connection lost: {exc}"
        if ws is self._ws and not self._closed:
            self._handle_disconnect(reason)

    def _handle_message(self, message: str | bytes) -> None:
        try:
            payload = json.loads(message)
        except ValueError:
            logger.warning("Dropping malformed WebSocket frame: %.200r", message)
            return
        items = payload if isinstance(payload, list) else [payload]
        for item in items:
            if isinstance(item, Mapping) and is_notification(item):
                self._handle_notification(item)
                continue
            try:
                response = parse_response(item)
            except TransportError as exc:
                logger.warning("Dropping frame: %s", exc)
                continue
            self._pending.settle(response)

    def _handle_notification(self, item: Mapping[str, Any]) -> None:
        params = item.get("params")
        if not str(item.get("method", "")).endswith("_subscription") or not isinstance(params, Mapping):
            logger.debug("Ignoring notification %r", item.get("method"))
            return
        subscription_id = params.get("subscription")
        subscription = self._subscriptions.get(subscription_id)
        if subscription is not None:
            subscription._push(params.get("result"))
            return
        buffered = self._orphans.get(subscription_id)
        if buffered is None:
            if len(self._orphans) >= ORPHAN_SUBSCRIPTIONS_MAX:
                self._orphans.popitem(last=False)
            buffered = self._orphans[subscription_id] = deque(maxlen=ORPHAN_NOTIFICATIONS_MAX)
        buffered.append(params.get("result"))

    def _handle_disconnect(self, reason: str) -> None:
        logger.warning("WebSocket to %s dropped: %s", self.url, reason)
        self._ws = None
        self._reader = None
        error = ConnectionLostError(reason)
        self._queue.clear()
        self._pending.fail_all(error)
        for subscription in list(self._subscriptions.values()):
            subscription._finish(error)
        self._subscriptions.clear()
        self._orphans.clear()
        if self.reconnect and self.reconnect_attempts > 0:
            self._state = ConnectionState.RECONNECTING
            self._reconnector = asyncio.get_running_loop().create_task(self._reconnect_loop())
        else:
            self._state = ConnectionState.CLOSED

    async def _reconnect_loop(self) -> None:
        for attempt in range(self.reconnect_attempts):
            delay = self.reconnect_delay * (2 ** attempt)
            logger.info("Reconnecting to %s in %.2fs (attempt %d/%d)",
                        self.url, delay, attempt + 1, self.reconnect_attempts)
            await asyncio.sleep(delay)
            if self._closed:
                return
            try:
                await self._open_connection()
                return
            except TransportError as exc:
                logger.warning("Reconnect to %s failed: %s", self.url, exc)
        logger.error("Giving up on %s after %d reconnect attempts", self.url, self.reconnect_attempts)
        self._state = ConnectionState.CLOSED
        self._fail_queued(ConnectionLostError(f"Could not reconnect to {self.url}"))

    async def subscribe(self, *params: Any) -> Subscription:
        """Open an ``eth_subscribe`` stream, e.g. ``subscribe("newHeads")``."""
        subscription_id = await self.request("eth_subscribe", list(params))
        subscription = Subscription(self, subscription_id)
        self._subscriptions[subscription_id] = subscription
        for result in self._orphans.pop(subscription_id, ()):
            subscription._push(result)
        logger.debug("Subscribed %s -> %s", params[:1], subscription_id)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> bool:
        self._subscriptions.pop(subscription.id, None)
        subscription._finish()
        if self._closed or self._state is not ConnectionState.OPEN:
            return False
        return bool(await self.request("eth_unsubscribe", [subscription.id]))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._state = ConnectionState.CLOSED
        for task in (self._reconnector, self._reader):
            if task is not None and not task.done():
                task.cancel()
        ws, self._ws = self._ws, None
        error = RequestCancelledError("Transport closed")
        self._queue.clear()
        self._pending.fail_all(error)
        for subscription in list(self._subscriptions.values()):
            subscription._finish()
        self._subscriptions.clear()
        if ws is not None:
            await ws.close()
        logger.info("WebSocket transport for %s closed", self.url)


__all__ = ["ConnectionState", "Subscription", "WebSocketTransport"]
