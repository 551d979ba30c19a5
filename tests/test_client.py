"""Client behaviour over a mocked HTTP endpoint."""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest
from eth_abi import encode as abi_encode

from aether.codec.abi import event_topic, function_selector
from aether.config import Config
from aether.pneuma.client import Chain, ChainMismatchError, Client, ContractRevertError
from aether.pneuma.errors import RequestTimeoutError, RpcRequestError, TransportError
from aether.pneuma.http import HttpTransport
from aether.pneuma.jsonrpc import RpcFailure, RpcSuccess
from aether.pneuma.retry import RetryPolicy
from aether.pneuma.transport import Transport
from aether.pneuma.websocket import WebSocketTransport
from aether.sigil.signature import LocalSigner
from aether.sigil.transactions import FeeMarketTransaction
from aether.spec.schemas import SchemaValidationError
from aether.utils import hex_to_bytes, keccak256

TOKEN = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
HOLDER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
HASH = "0x" + "11" * 32

ERC20_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "event",
        "name": "Transfer",
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "error",
        "name": "InsufficientBalance",
        "inputs": [{"name": "available", "type": "uint256"}, {"name": "required", "type": "uint256"}],
    },
]

Handler = Callable[[list], Any]


class Node:
    """Fake node answering by method name; handlers get the params list."""

    def __init__(self, **handlers: Handler) -> None:
        self.handlers = handlers
        self.calls: list[tuple[str, list]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if isinstance(body, list):
            return httpx.Response(200, json=[self._answer(item) for item in body])
        return httpx.Response(200, json=self._answer(body))

    def _answer(self, body: dict) -> dict:
        self.calls.append((body["method"], body["params"]))
        handler = self.handlers[body["method"]]
        try:
            result = handler(body["params"])
        except RpcRequestError as exc:
            error = {"code": exc.code, "message": exc.message}
            if exc.data is not None:
                error["data"] = exc.data
            return {"jsonrpc": "2.0", "id": body["id"], "error": error}
        return {"jsonrpc": "2.0", "id": body["id"], "result": result}


def make_client(node: Node, **kwargs: Any) -> Client:
    transport = HttpTransport(
        "https://rpc.example",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(node)),
        retry=RetryPolicy(retry_count=1, base_delay=0, jitter=0),
    )
    return Client(transport, **kwargs)


class SubscriptionOnly(Transport):
    kind = "subscription-only"

    def __init__(self) -> None:
        super().__init__()
        self.subscribed: list[tuple] = []

    async def _send(self, entry: Any) -> None:
        raise AssertionError("requests must not reach the subscription transport")

    async def subscribe(self, *params: Any) -> str:
        self.subscribed.append(params)
        return "0xsub"


def word(value: int) -> str:
    return "0x" + value.to_bytes(32, "big").hex()


class TestRequest:
    @pytest.mark.asyncio
    async def test_invalid_params_never_reach_the_node(self) -> None:
        node = Node(eth_getBalance=lambda params: "0x0")
        client = make_client(node)
        with pytest.raises(SchemaValidationError):
            await client.request("eth_getBalance", ["not-an-address"])
        assert node.calls == []

    @pytest.mark.asyncio
    async def test_validation_can_be_disabled(self) -> None:
        node = Node(eth_getBalance=lambda params: "0x0")
        client = make_client(node, validate=False)
        assert await client.request("eth_getBalance", ["not-an-address"]) == "0x0"

    @pytest.mark.asyncio
    async def test_invalid_result_is_rejected(self) -> None:
        client = make_client(Node(eth_blockNumber=lambda params: 16))
        with pytest.raises(SchemaValidationError):
            await client.request("eth_blockNumber")

    @pytest.mark.asyncio
    async def test_raw_and_decoded(self) -> None:
        client = make_client(Node(eth_blockNumber=lambda params: "0x10"))
        assert await client.request("eth_blockNumber") == "0x10"
        assert await client.request_decoded("eth_blockNumber") == 16

    @pytest.mark.asyncio
    async def test_unknown_method_passes_through(self) -> None:
        client = make_client(Node(debug_custom=lambda params: {"ok": params}))
        assert await client.request("debug_custom", [1, "two"]) == {"ok": [1, "two"]}

    @pytest.mark.asyncio
    async def test_batch(self) -> None:
        def fail(params):
            raise RpcRequestError("no such block", code=-32000)

        client = make_client(Node(eth_chainId=lambda params: "0x1", eth_getBlockByNumber=fail))
        responses = await client.request_batch([("eth_chainId", None), ("eth_getBlockByNumber", ["0x99", False])])
        assert isinstance(responses[0], RpcSuccess)
        assert isinstance(responses[1], RpcFailure)
        with pytest.raises(SchemaValidationError):
            await client.request_batch([("eth_chainId", ["extra"])])


class TestChain:
    def test_chain_id_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Chain(id=0)

    @pytest.mark.asyncio
    async def test_configured_chain_skips_the_node(self) -> None:
        node = Node()
        client = make_client(node, chain=Chain(id=10, name="optimism"))
        assert await client.chain_id() == 10
        assert node.calls == []

    @pytest.mark.asyncio
    async def test_chain_id_from_node(self) -> None:
        client = make_client(Node(eth_chainId=lambda params: "0x89"))
        assert await client.chain_id() == 137


class TestContracts:
    @pytest.mark.asyncio
    async def test_read_contract(self) -> None:
        def eth_call(params):
            call, block = params
            assert call["to"] == TOKEN
            assert call["data"].startswith("0x70a08231")
            assert block == "latest"
            return "0x" + abi_encode(["uint256"], [10**18]).hex()

        client = make_client(Node(eth_call=eth_call))
        assert await client.read_contract(TOKEN, ERC20_ABI, "balanceOf", [HOLDER]) == 10**18

    @pytest.mark.asyncio
    async def test_revert_reason(self) -> None:
        data = "0x08c379a0" + abi_encode(["string"], ["not enough"]).hex()

        def eth_call(params):
            raise RpcRequestError("execution reverted", code=3, data=data)

        client = make_client(Node(eth_call=eth_call))
        with pytest.raises(ContractRevertError) as info:
            await client.read_contract(TOKEN, ERC20_ABI, "balanceOf", [HOLDER])
        assert info.value.error.message == "not enough"
        assert info.value.code == 3

    @pytest.mark.asyncio
    async def test_custom_error_nested_data(self) -> None:
        selector = function_selector("InsufficientBalance(uint256,uint256)")
        data = "0x" + selector.hex() + abi_encode(["uint256", "uint256"], [1, 2]).hex()

        def eth_call(params):
            raise RpcRequestError("reverted", code=-32000, data={"data": data})

        client = make_client(Node(eth_call=eth_call))
        with pytest.raises(ContractRevertError) as info:
            await client.read_contract(TOKEN, ERC20_ABI, "balanceOf", [HOLDER])
        assert info.value.error.name == "InsufficientBalance"
        assert info.value.error.args == (1, 2)

    @pytest.mark.asyncio
    async def test_undecodable_revert_is_reraised(self) -> None:
        def eth_call(params):
            raise RpcRequestError("out of gas", code=-32000)

        client = make_client(Node(eth_call=eth_call))
        with pytest.raises(RpcRequestError, match="out of gas"):
            await client.read_contract(TOKEN, ERC20_ABI, "balanceOf", [HOLDER])

    @pytest.mark.asyncio
    async def test_get_logs_decodes_events(self) -> None:
        transfer = {
            "address": TOKEN.lower(),
            "topics": [
                "0x" + event_topic("Transfer(address,address,uint256)").hex(),
                "0x" + "00" * 12 + TOKEN[2:].lower(),
                "0x" + "00" * 12 + HOLDER[2:].lower(),
            ],
            "data": word(5),
            "logIndex": "0x0",
        }
        unknown = {"address": TOKEN.lower(), "topics": [HASH], "data": "0x", "logIndex": "0x1"}
        client = make_client(Node(eth_getLogs=lambda params: [transfer, unknown]))

        logs = await client.get_logs({"address": TOKEN, "fromBlock": "0x1"}, abi=ERC20_ABI)
        event = logs[0]["event"]
        assert event.name == "Transfer"
        assert event.args == {"from": TOKEN, "to": HOLDER, "value": 5}
        assert logs[0]["address"] == TOKEN
        assert logs[1]["event"] is None

    @pytest.mark.asyncio
    async def test_get_logs_without_abi(self) -> None:
        client = make_client(Node(eth_getLogs=lambda params: []))
        assert await client.get_logs({"fromBlock": "latest"}) == []


class TestTransactions:
    SIGNER = LocalSigner("0x" + "46" * 32)

    def _tx(self, chain_id: int = 1) -> FeeMarketTransaction:
        return FeeMarketTransaction(
            chain_id=chain_id,
            nonce=0,
            max_priority_fee_per_gas=1,
            max_fee_per_gas=2,
            gas=21000,
            to=HOLDER,
            value=1,
        )

    @pytest.mark.asyncio
    async def test_send_transaction_returns_hash(self) -> None:
        sent: list[str] = []

        def send_raw(params):
            sent.append(params[0])
            return "0x" + keccak256(hex_to_bytes(params[0])).hex()

        client = make_client(Node(eth_chainId=lambda params: "0x1", eth_sendRawTransaction=send_raw))
        tx_hash = await client.send_transaction(self._tx(), self.SIGNER)
        assert tx_hash == keccak256(hex_to_bytes(sent[0]))
        assert sent[0].startswith("0x02")

    @pytest.mark.asyncio
    async def test_chain_mismatch(self) -> None:
        node = Node(eth_sendRawTransaction=lambda params: HASH)
        client = make_client(node, chain=Chain(id=1))
        with pytest.raises(ChainMismatchError) as info:
            await client.send_transaction(self._tx(chain_id=5), self.SIGNER)
        assert (info.value.expected, info.value.actual) == (1, 5)
        assert node.calls == []

    @pytest.mark.asyncio
    async def test_wait_for_receipt(self) -> None:
        receipt = {
            "transactionHash": HASH,
            "blockHash": HASH,
            "blockNumber": "0x5",
            "gasUsed": "0x5208",
            "cumulativeGasUsed": "0x5208",
            "status": "0x1",
            "logs": [],
        }
        answers = [None, None, receipt]
        node = Node(eth_getTransactionReceipt=lambda params: answers.pop(0))
        client = make_client(node)
        result = await client.wait_for_transaction_receipt(HASH, poll_interval=0)
        assert result["blockNumber"] == 5
        assert len(node.calls) == 3

    @pytest.mark.asyncio
    async def test_wait_for_receipt_times_out(self) -> None:
        client = make_client(Node(eth_getTransactionReceipt=lambda params: None))
        with pytest.raises(RequestTimeoutError):
            await client.wait_for_transaction_receipt(b"\x11" * 32, timeout=0.05, poll_interval=0.01)


class TestConstruction:
    def test_from_config_http_with_batching(self) -> None:
        config = Config(rpc_url="https://rpc.example", chain_id=1, batch_size=20, batch_wait=0.01, retry_count=5)
        client = Client.from_config(config)
        assert isinstance(client.transport, HttpTransport)
        assert client.transport.batch.size == 20
        assert client.transport.retry.retry_count == 5
        assert client.chain == Chain(id=1)

    def test_from_config_websocket(self) -> None:
        client = Client.from_config(Config(rpc_url="wss://rpc.example/ws", timeout=3))
        assert isinstance(client.transport, WebSocketTransport)
        assert client.transport.timeout == 3
        assert client.chain is None
        assert repr(client) == "Client(transport=websocket, chain=None)"
        assert client.subscription_transport is None

    def test_from_config_http_with_ws_url(self) -> None:
        client = Client.from_config(Config(rpc_url="https://rpc.example", ws_url="wss://rpc.example/ws"))
        assert isinstance(client.transport, HttpTransport)
        assert isinstance(client.subscription_transport, WebSocketTransport)
        assert client.subscription_transport.url == "wss://rpc.example/ws"

    @pytest.mark.asyncio
    async def test_subscribe_uses_subscription_transport(self) -> None:
        subscriptions = SubscriptionOnly()
        client = make_client(Node(), subscription_transport=subscriptions)
        assert await client.subscribe("newHeads") == "0xsub"
        assert subscriptions.subscribed == [("newHeads",)]
        await client.close()
        assert subscriptions.closed
        assert client.transport.closed

    @pytest.mark.asyncio
    async def test_subscribe_validates_before_transport(self) -> None:
        client = make_client(Node())
        with pytest.raises(SchemaValidationError):
            await client.subscribe("blocks")
        with pytest.raises(TransportError):
            await client.subscribe("newHeads")

    @pytest.mark.asyncio
    async def test_context_manager_closes_transport(self) -> None:
        async with make_client(Node()) as client:
            pass
        assert client.transport.closed
