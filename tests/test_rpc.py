"""Tests for the JSON-RPC client and node error mapping."""

import json

import httpx
import pytest
from eth_abi import encode

from nullwallet.errors import (
    ChainError,
    ContractCallReverted,
    InsufficientFunds,
    RpcUnavailable,
)
from nullwallet.transfer.rpc import (
    ERROR_STRING_SELECTOR,
    EvmRpcClient,
    decode_revert_reason,
    map_rpc_error,
    receipt_status,
)

RPC_URL = "http://node.test"


def revert_data(reason: str) -> str:
    return ERROR_STRING_SELECTOR + encode(["string"], [reason]).hex()


def make_client(handler) -> EvmRpcClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EvmRpcClient(RPC_URL, timeout=1.0, client=client)


def rpc_handler(results: dict, seen: list = None):
    """Answer each JSON-RPC method from ``results``."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if seen is not None:
            seen.append(payload)
        answer = results[payload["method"]]
        if isinstance(answer, dict) and "code" in answer:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "error": answer})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": answer})

    return handler


class TestErrorMapping:
    """Node error objects to wallet errors."""

    def test_insufficient_funds(self):
        error = map_rpc_error(
            {"code": -32000, "message": "insufficient funds for gas * price + value"},
            "eth_sendRawTransaction",
        )
        assert isinstance(error, InsufficientFunds)

    def test_revert_with_reason(self):
        error = map_rpc_error(
            {"code": 3, "message": "execution reverted", "data": revert_data("GasSponsor: Gas price too high")},
            "eth_estimateGas",
        )
        assert isinstance(error, ContractCallReverted)
        assert error.reason == "GasSponsor: Gas price too high"

    def test_revert_reason_from_message(self):
        error = map_rpc_error(
            {"code": -32000, "message": "execution reverted: ERC20: insufficient allowance"},
            "eth_call",
        )
        assert isinstance(error, ContractCallReverted)
        assert error.reason == "ERC20: insufficient allowance"

    def test_other_errors(self):
        error = map_rpc_error({"code": -32601, "message": "method not found"}, "eth_foo")
        assert type(error) is ChainError
        assert "method not found" in error.message
        assert not error.retryable

    def test_decode_revert_reason(self):
        assert decode_revert_reason(revert_data("nope")) == "nope"
        assert decode_revert_reason({"data": revert_data("nested")}) == "nested"
        assert decode_revert_reason("0x12345678") is None
        assert decode_revert_reason(ERROR_STRING_SELECTOR + "zz") is None
        assert decode_revert_reason(None) is None

    def test_receipt_status(self):
        assert receipt_status({"status": "0x1"}) == 1
        assert receipt_status({"status": "0x0"}) == 0
        assert receipt_status({}) == 0


class TestTransport:
    """HTTP-level failures."""

    async def test_request_shape(self):
        seen = []
        client = make_client(rpc_handler({"eth_getBalance": "0xde0b6b3a7640000"}, seen))

        balance = await client.get_balance("0xabc")

        assert balance == 10**18
        assert seen[0]["jsonrpc"] == "2.0"
        assert seen[0]["method"] == "eth_getBalance"
        assert seen[0]["params"] == ["0xabc", "latest"]

    @pytest.mark.parametrize("status", [429, 502, 503])
    async def test_server_errors_are_retryable(self, status):
        client = make_client(lambda request: httpx.Response(status))

        with pytest.raises(RpcUnavailable) as exc_info:
            await client.get_gas_price()
        assert exc_info.value.retryable

    async def test_client_error(self):
        client = make_client(lambda request: httpx.Response(404))

        with pytest.raises(ChainError) as exc_info:
            await client.get_gas_price()
        assert not isinstance(exc_info.value, RpcUnavailable)

    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(RpcUnavailable):
            await client.get_transaction_count("0xabc")

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RpcUnavailable):
            await make_client(handler).get_chain_id()

    async def test_invalid_json(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(ChainError, match="invalid JSON"):
            await client.get_gas_price()

    async def test_node_error_is_mapped(self):
        client = make_client(rpc_handler({
            "eth_sendRawTransaction": {"code": -32000, "message": "insufficient funds for transfer"},
        }))

        with pytest.raises(InsufficientFunds):
            await client.send_raw_transaction("f86b")


class TestFeeData:
    """get_fee_data with and without a base fee."""

    async def test_eip1559(self):
        client = make_client(rpc_handler({
            "eth_gasPrice": hex(2 * 10**9),
            "eth_getBlockByNumber": {"number": "0x1", "baseFeePerGas": hex(10**9)},
            "eth_maxPriorityFeePerGas": hex(10**9),
        }))

        fee_data = await client.get_fee_data()

        assert fee_data == {
            "gas_price": 2 * 10**9,
            "max_fee_per_gas": 3 * 10**9,
            "max_priority_fee_per_gas": 10**9,
        }

    async def test_block_without_base_fee(self):
        client = make_client(rpc_handler({
            "eth_gasPrice": hex(5 * 10**9),
            "eth_getBlockByNumber": {"number": "0x1"},
        }))

        fee_data = await client.get_fee_data()

        assert fee_data["gas_price"] == 5 * 10**9
        assert fee_data["max_fee_per_gas"] is None

    async def test_legacy_chain_skips_block_lookup(self):
        seen = []
        client = make_client(rpc_handler({"eth_gasPrice": hex(10**9)}, seen))

        await client.get_fee_data(eip1559=False)

        assert [p["method"] for p in seen] == ["eth_gasPrice"]


class TestReceipts:
    """wait_for_receipt polling."""

    async def test_polls_until_mined(self):
        receipts = [None, None, {"status": "0x1", "blockNumber": "0x5"}]

        client = make_client(rpc_handler({}))
        client.get_transaction_receipt = lambda tx_hash: _pop(receipts)

        receipt = await client.wait_for_receipt("0xhash", timeout=5, poll_interval=0)

        assert receipt["blockNumber"] == "0x5"
        assert receipts == []

    async def test_times_out(self):
        client = make_client(rpc_handler({"eth_getTransactionReceipt": None}))

        with pytest.raises(RpcUnavailable, match="not mined"):
            await client.wait_for_receipt("0xhash", timeout=0, poll_interval=0)


async def _pop(items: list):
    return items.pop(0)
