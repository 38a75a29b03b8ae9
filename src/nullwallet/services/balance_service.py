"""Read-only balance lookups across EVM chains and the NullNet ledger.

Native balances are read over JSON-RPC with a few retries and fall back to
the chain's block explorer API before giving up.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Callable, Optional

import httpx
from eth_abi import encode

from nullwallet.chains import Chain, ChainRegistry
from nullwallet.errors import ChainError, RpcUnavailable, UnsupportedChain
from nullwallet.ledger.accounts import LedgerAccount
from nullwallet.transfer.evm import checksum_address
from nullwallet.transfer.rpc import EvmRpcClient
from nullwallet.utils.amounts import from_base_units

logger = logging.getLogger(__name__)

# ERC20 balanceOf(address) method signature
BALANCE_OF_SIGNATURE = "0x70a08231"


class BalanceService:
    """Balance reads for any chain in the registry."""

    def __init__(
        self,
        registry: ChainRegistry,
        ledger: LedgerAccount,
        rpc_factory: Callable[[Chain], EvmRpcClient],
        explorer_api_key: Callable[[str], str] = lambda chain_id: "",
        retry_attempts: int = 3,
        retry_backoff: float = 1.0,
        http_timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.registry = registry
        self.ledger = ledger
        self._rpc_factory = rpc_factory
        self._explorer_api_key = explorer_api_key
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff
        self.http_timeout = http_timeout
        self._http_client = http_client

    def _get_chain(self, chain_id: str) -> Chain:
        chain = self.registry.get_chain(chain_id)
        if chain is None or not chain.enabled:
            raise UnsupportedChain(f"Chain {chain_id} is not supported")
        return chain

    async def get_native_balance(self, chain_id: str, address: str) -> Decimal:
        """Native currency balance of ``address``.

        Raises:
            UnsupportedChain: unknown chain
            InvalidAddressFormat: malformed address
            RpcUnavailable: neither the RPC nor the explorer answered
        """
        chain = self._get_chain(chain_id)
        if chain.is_ledger:
            return await self.ledger.get_balance(address, chain.native_currency.symbol)

        address = checksum_address(address)
        decimals = chain.native_currency.decimals
        rpc = self._rpc_factory(chain)

        last_error: Optional[Exception] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                wei = await rpc.get_balance(address)
                return from_base_units(wei, decimals)
            except ChainError as e:
                last_error = e
                logger.warning(
                    f"Balance read {attempt}/{self.retry_attempts} for {address} "
                    f"on {chain.id} failed: {e.message}"
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_backoff)

        if chain.explorer_api_url:
            try:
                wei = await self._explorer_balance(chain, address)
                logger.info(f"Served {chain.id} balance of {address} from explorer")
                return from_base_units(wei, decimals)
            except (httpx.HTTPError, ValueError, KeyError) as e:
                last_error = e
                logger.warning(f"Explorer balance for {address} on {chain.id} failed: {e}")

        raise RpcUnavailable(
            f"Could not read {chain.native_currency.symbol} balance of {address} on {chain.id}"
        ) from last_error

    async def _explorer_balance(self, chain: Chain, address: str) -> int:
        """Etherscan-style ``account/balance`` query; returns wei."""
        params = {
            "module": "account",
            "action": "balance",
            "address": address,
            "tag": "latest",
        }
        api_key = self._explorer_api_key(chain.id)
        if api_key:
            params["apikey"] = api_key

        if self._http_client is not None:
            response = await self._http_client.get(
                chain.explorer_api_url, params=params, timeout=self.http_timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                response = await client.get(chain.explorer_api_url, params=params)

        response.raise_for_status()
        data = response.json()
        if str(data.get("status")) != "1":
            raise ValueError(f"Explorer error: {data.get('message')} {data.get('result')}")
        return int(data["result"])

    async def get_token_balance(self, chain_id: str, symbol: str, address: str) -> Decimal:
        """Balance of one token, scaled by its decimals on the chain."""
        chain, deployment = self.registry.validate_chain_and_token(chain_id, symbol)

        if chain.is_ledger:
            return await self.ledger.get_balance(address, symbol.upper())
        if deployment.is_native:
            return await self.get_native_balance(chain_id, address)

        address = checksum_address(address)
        data = BALANCE_OF_SIGNATURE + encode(["address"], [address]).hex()
        result = await self._rpc_factory(chain).call(deployment.contract_address, data)

        # No code at the address
        if not result or result == "0x":
            return Decimal("0")
        return from_base_units(int(result, 16), deployment.decimals)

    async def get_balances(self, chain_id: str, address: str) -> dict[str, Decimal]:
        """Every listed token's balance on one chain."""
        chain = self._get_chain(chain_id)
        if chain.is_ledger:
            return await self.ledger.get_balances(address)

        balances = {}
        for token in self.registry.get_chain_tokens(chain_id):
            balances[token["symbol"]] = await self.get_token_balance(
                chain_id, token["symbol"], address
            )
        return balances
