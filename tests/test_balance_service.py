"""Tests for balance reads."""

from decimal import Decimal

import httpx
import pytest
from eth_abi import encode

from nullwallet.chains import ChainRegistry
from nullwallet.errors import (
    ChainError,
    InvalidAddressFormat,
    RpcUnavailable,
    UnsupportedChain,
    UnsupportedToken,
)
from nullwallet.services.balance_service import BALANCE_OF_SIGNATURE, BalanceService

from tests.fakes import RECEIVER, SENDER, SEPOLIA_USDC, FakeRpc


def make_service(rpc, ledger, **kwargs) -> BalanceService:
    kwargs.setdefault("retry_backoff", 0)
    return BalanceService(ChainRegistry(), ledger, rpc_factory=lambda chain: rpc, **kwargs)


def explorer_client(handler, seen: list = None) -> httpx.AsyncClient:
    def record(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return handler(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(record))


class TestNativeBalance:
    """RPC reads with retry and explorer fallback."""

    async def test_reads_from_rpc(self, ledger):
        rpc = FakeRpc(balances={SENDER: 25 * 10**17})

        balance = await make_service(rpc, ledger).get_native_balance("sepolia", SENDER)

        assert balance == Decimal("2.5")

    async def test_retries_then_succeeds(self, ledger):
        rpc = FakeRpc(balances={SENDER: 10**18})
        rpc.balance_errors = [RpcUnavailable("timeout"), ChainError("header not found")]

        balance = await make_service(rpc, ledger, retry_attempts=3).get_native_balance("sepolia", SENDER)

        assert balance == Decimal("1")
        assert rpc.balance_reads == 3

    async def test_explorer_fallback(self, ledger):
        rpc = FakeRpc()
        rpc.balance_errors = [RpcUnavailable("down")] * 2
        seen = []
        client = explorer_client(
            lambda request: httpx.Response(200, json={"status": "1", "message": "OK", "result": "3000000000000000000"}),
            seen,
        )
        service = make_service(
            rpc, ledger, retry_attempts=2, http_client=client, explorer_api_key=lambda chain_id: "KEY"
        )

        balance = await service.get_native_balance("sepolia", SENDER)

        assert balance == Decimal("3")
        params = seen[0].url.params
        assert params["module"] == "account"
        assert params["action"] == "balance"
        assert params["address"] == SENDER
        assert params["apikey"] == "KEY"
        assert seen[0].url.host == "api-sepolia.etherscan.io"

    async def test_everything_down(self, ledger):
        rpc = FakeRpc()
        rpc.balance_errors = [RpcUnavailable("down")] * 3
        client = explorer_client(
            lambda request: httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "rate limit"})
        )

        with pytest.raises(RpcUnavailable) as exc_info:
            await make_service(rpc, ledger, http_client=client).get_native_balance("sepolia", SENDER)

        assert exc_info.value.retryable

    async def test_explorer_http_error(self, ledger):
        rpc = FakeRpc()
        rpc.balance_errors = [RpcUnavailable("down")]
        client = explorer_client(lambda request: httpx.Response(502))

        with pytest.raises(RpcUnavailable):
            await make_service(rpc, ledger, retry_attempts=1, http_client=client).get_native_balance(
                "sepolia", SENDER
            )

    async def test_invalid_address(self, ledger):
        rpc = FakeRpc()

        with pytest.raises(InvalidAddressFormat):
            await make_service(rpc, ledger).get_native_balance("sepolia", "0x123")
        assert rpc.balance_reads == 0

    async def test_unknown_chain(self, ledger):
        with pytest.raises(UnsupportedChain):
            await make_service(FakeRpc(), ledger).get_native_balance("solana", SENDER)

    async def test_ledger_native_asset(self, ledger):
        address, _ = await ledger.open_account()
        await ledger.credit(address, "NULL", 42)

        balance = await make_service(FakeRpc(), ledger).get_native_balance("nullnet", address)

        assert balance == Decimal("42")


class TestTokenBalance:
    """ERC-20 balanceOf and ledger assets."""

    async def test_erc20_balance_of(self, ledger):
        rpc = FakeRpc(call_result="0x" + encode(["uint256"], [12_500_000]).hex())

        balance = await make_service(rpc, ledger).get_token_balance("sepolia", "usdc", RECEIVER)

        assert balance == Decimal("12.5")
        to, data = rpc.calls[0]
        assert to.lower() == SEPOLIA_USDC
        assert data == BALANCE_OF_SIGNATURE + encode(["address"], [RECEIVER]).hex()

    async def test_empty_result_is_zero(self, ledger):
        rpc = FakeRpc(call_result="0x")

        balance = await make_service(rpc, ledger).get_token_balance("sepolia", "USDT", RECEIVER)

        assert balance == Decimal("0")

    async def test_native_symbol_uses_native_path(self, ledger):
        rpc = FakeRpc(balances={RECEIVER: 10**18})

        balance = await make_service(rpc, ledger).get_token_balance("sepolia", "ETH", RECEIVER)

        assert balance == Decimal("1")
        assert rpc.calls == []

    async def test_token_not_on_chain(self, ledger):
        with pytest.raises(UnsupportedToken):
            await make_service(FakeRpc(), ledger).get_token_balance("sepolia", "CAKE", RECEIVER)

    async def test_ledger_asset(self, ledger):
        address, _ = await ledger.open_account()
        await ledger.credit(address, "DIAMOND", Decimal("0.5"))

        balance = await make_service(FakeRpc(), ledger).get_token_balance("nullnet", "diamond", address)

        assert balance == Decimal("0.5")

    async def test_all_balances_on_chain(self, ledger):
        rpc = FakeRpc(balances={RECEIVER: 2 * 10**18}, call_result="0x" + encode(["uint256"], [10**6]).hex())

        balances = await make_service(rpc, ledger).get_balances("sepolia", RECEIVER)

        assert balances == {"ETH": Decimal("2"), "USDT": Decimal("1"), "USDC": Decimal("1")}
