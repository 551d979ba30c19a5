"""
Client: one transport, zero or one chain.

``Client.request`` validates parameters against the method table, sends the
request through the transport and validates the raw result. Decoding into
Python values is a separate, explicit step (``request_decoded`` or
``aether.spec.decode_result``). The contract helpers layer ABI encoding on
top of ``eth_call`` and ``eth_getLogs``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ..codec.abi import (
    AbiError,
    DecodedError,
    decode_error_result,
    decode_event_log,
    decode_function_result,
    encode_function_data,
)
from ..config import Config
from ..sigil.signature import HashSigner
from ..sigil.transactions import Transaction, sign_transaction, transaction_hash
from ..spec.methods import RpcMethod, decode_result, validate_params, validate_result
from ..spec.schemas import SchemaRegistry
from ..utils import decode_quantity, is_hex, to_hex
from .errors import RequestTimeoutError, RpcRequestError
from .http import BatchOptions, HttpTransport
from .jsonrpc import RpcResponse, RpcSuccess
from .retry import RetryPolicy
from .transport import Transport
from .websocket import Subscription, WebSocketTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Chain:
    id: int
    name: str = ""

    def __post_init__(self) -> None:
        if self.id <= 0:
            raise ValueError(f"Chain id must be positive, got {self.id}")


class ChainMismatchError(ValueError):
    def __init__(self, expected: int, actual: int | None) -> None:
        super().__init__(f"Transaction chain id {actual} does not match the connected chain {expected}")
        self.expected = expected
        self.actual = actual


class ContractRevertError(Exception):
    """An ``eth_call`` reverted; ``error`` holds the decoded revert reason."""

    def __init__(self, error: DecodedError, cause: RpcRequestError) -> None:
        super().__init__(f"Execution reverted: {error.message}")
        self.error = error
        self.code = cause.code
        self.data = cause.data


class Client:
    def __init__(
        self,
        transport: Transport,
        chain: Chain | None = None,
        *,
        validate: bool = True,
        registry: SchemaRegistry | None = None,
        poll_interval: float = 1.0,
        subscription_transport: Transport | None = None,
    ) -> None:
        self.transport = transport
        self.subscription_transport = subscription_transport
        self.chain = chain
        self.validate = validate
        self.poll_interval = poll_interval
        self._registry = registry

    @classmethod
    def from_config(cls, config: Config) -> "Client":
        """Build a client from ``Config``.

        With an http(s) ``rpc_url`` and a ``ws_url``, requests go over HTTP and
        subscriptions over a separate WebSocket transport.
        """
        retry = RetryPolicy(retry_count=config.retry_count, base_delay=config.retry_delay)
        transport: Transport
        subscriptions: Transport | None = None
        if config.rpc_url.startswith(("ws://", "wss://")):
            transport = WebSocketTransport(config.rpc_url, timeout=config.timeout, retry=retry)
        else:
            batch = None
            if config.batch_size:
                batch = BatchOptions(size=config.batch_size, wait=config.batch_wait)
            transport = HttpTransport(config.rpc_url, timeout=config.timeout, retry=retry, batch=batch)
            if config.ws_url:
                subscriptions = WebSocketTransport(config.ws_url, timeout=config.timeout, retry=retry)
        chain = Chain(id=config.chain_id) if config.chain_id else None
        return cls(transport, chain, subscription_transport=subscriptions)

    @property
    def registry(self) -> SchemaRegistry:
        if self._registry is None:
            self._registry = SchemaRegistry.default()
        return self._registry

    async def request(
        self,
        method: str | RpcMethod,
        params: Sequence[Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        """Send one request and return the validated raw result."""
        method = str(method)
        params = list(params or ())
        if self.validate:
            validate_params(method, params, self.registry)
        result = await self.transport.request(method, params, timeout=timeout)
        if self.validate:
            validate_result(method, result, self.registry)
        return result

    async def request_decoded(
        self,
        method: str | RpcMethod,
        params: Sequence[Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        return decode_result(method, await self.request(method, params, timeout=timeout))

    async def request_batch(
        self,
        calls: Sequence[tuple[str | RpcMethod, Sequence[Any] | None]],
        *,
        timeout: float | None = None,
    ) -> list[RpcResponse]:
        normalized = [(str(method), list(params or ())) for method, params in calls]
        if self.validate:
            for method, params in normalized:
                validate_params(method, params, self.registry)
        responses = await self.transport.request_batch(normalized, timeout=timeout)
        if self.validate:
            for (method, _), response in zip(normalized, responses):
                if isinstance(response, RpcSuccess):
                    validate_result(method, response.result, self.registry)
        return responses

    async def chain_id(self) -> int:
        """Configured chain id, or the node's ``eth_chainId`` when none is set."""
        if self.chain is not None:
            return self.chain.id
        return decode_quantity(await self.request(RpcMethod.ETH_CHAIN_ID))

    async def read_contract(
        self,
        address: str,
        abi: Sequence[Mapping[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
        *,
        block: Any = "latest",
    ) -> Any:
        """
        Call a view function and decode its return data.

        Raises:
            ContractRevertError: If the call reverted with decodable data
            RpcRequestError: For any other node error
        """
        call = {"to": address, "data": to_hex(encode_function_data(abi, function_name, args))}
        try:
            raw = await self.request(RpcMethod.ETH_CALL, [call, block])
        except RpcRequestError as exc:
            decoded = _decode_revert(exc, abi)
            if decoded is None:
                raise
            raise ContractRevertError(decoded, exc) from exc
        return decode_function_result(abi, function_name, raw)

    async def get_logs(
        self,
        filter_params: Mapping[str, Any],
        abi: Sequence[Mapping[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch logs; with ``abi``, each log gains an ``event`` key (``None`` if no event matches)."""
        logs = await self.request_decoded(RpcMethod.ETH_GET_LOGS, [dict(filter_params)])
        if abi is None:
            return logs
        for log in logs:
            try:
                log["event"] = decode_event_log(abi, log["topics"], log["data"])
            except AbiError as exc:
                logger.debug("Log at index %s not decoded: %s", log.get("logIndex"), exc)
                log["event"] = None
        return logs

    async def send_transaction(self, tx: Transaction, signer: HashSigner) -> bytes:
        """Sign locally and broadcast with ``eth_sendRawTransaction``; returns the hash."""
        expected = await self.chain_id()
        actual = getattr(tx, "chain_id", None)
        if actual is not None and actual != expected:
            raise ChainMismatchError(expected, actual)
        raw = sign_transaction(tx, signer)
        tx_hash = await self.request_decoded(RpcMethod.ETH_SEND_RAW_TRANSACTION, [to_hex(raw)])
        local_hash = transaction_hash(raw)
        if tx_hash != local_hash:
            logger.warning("Node reported hash 0x%s, expected 0x%s", tx_hash.hex(), local_hash.hex())
        return tx_hash

    async def wait_for_transaction_receipt(
        self,
        tx_hash: bytes | str,
        *,
        timeout: float = 120.0,
        poll_interval: float | None = None,
    ) -> dict[str, Any]:
        """Poll ``eth_getTransactionReceipt`` until the receipt exists.

        Raises:
            RequestTimeoutError: If no receipt appears within ``timeout`` seconds
        """
        interval = self.poll_interval if poll_interval is None else poll_interval
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        hash_hex = to_hex(tx_hash)
        while True:
            receipt = await self.request_decoded(RpcMethod.ETH_GET_TRANSACTION_RECEIPT, [hash_hex])
            if receipt is not None:
                return receipt
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise RequestTimeoutError(RpcMethod.ETH_GET_TRANSACTION_RECEIPT.value, timeout)
            logger.debug("Receipt for %s not available yet", hash_hex)
            await asyncio.sleep(min(interval, remaining))

    async def subscribe(self, *params: Any) -> Subscription:
        if self.validate:
            validate_params(RpcMethod.ETH_SUBSCRIBE, list(params), self.registry)
        transport = self.subscription_transport or self.transport
        return await transport.subscribe(*params)

    async def close(self) -> None:
        await self.transport.close()
        if self.subscription_transport is not None:
            await self.subscription_transport.close()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        chain = self.chain.id if self.chain else None
        return f"Client(transport={self.transport.kind}, chain={chain})"


def _decode_revert(exc: RpcRequestError, abi: Sequence[Mapping[str, Any]]) -> DecodedError | None:
    data = exc.data
    if isinstance(data, Mapping):
        data = data.get("data")
    if not is_hex(data) or len(data) < 10:
        return None
    try:
        return decode_error_result(data, abi)
    except AbiError:
        return None


__all__ = ["Chain", "ChainMismatchError", "Client", "ContractRevertError"]
