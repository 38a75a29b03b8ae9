"""Minimal async EVM JSON-RPC client.

Raw JSON-RPC over httpx rather than a web3 provider, so every call is
bounded by one client-side timeout and every node error is mapped onto the
wallet error taxonomy in one place.
"""

import asyncio
import itertools
import logging
from typing import Any, Optional

import httpx
from eth_abi import decode

from nullwallet.errors import (
    ChainError,
    ContractCallReverted,
    InsufficientFunds,
    RpcUnavailable,
    WalletError,
)

logger = logging.getLogger(__name__)

# Error(string) selector used by require()/revert("...")
ERROR_STRING_SELECTOR = "0x08c379a0"

_request_ids = itertools.count(1)


def decode_revert_reason(data: Any) -> Optional[str]:
    """Decode an ``Error(string)`` revert payload, if that's what it is."""
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, str) or not data.startswith(ERROR_STRING_SELECTOR):
        return None
    try:
        (reason,) = decode(["string"], bytes.fromhex(data[len(ERROR_STRING_SELECTOR):]))
        return reason
    except Exception:
        logger.debug(f"Could not decode revert data: {data[:80]}")
        return None


def map_rpc_error(error: dict, method: str) -> WalletError:
    """Map a JSON-RPC error object to a typed wallet error."""
    code = error.get("code")
    message = str(error.get("message", "")) or "unknown RPC error"
    lowered = message.lower()

    if "insufficient funds" in lowered:
        return InsufficientFunds(f"Insufficient funds for gas * price + value: {message}")

    if code == 3 or "execution reverted" in lowered or "revert" in lowered:
        reason = decode_revert_reason(error.get("data"))
        if reason is None and ":" in message:
            reason = message.split(":", 1)[1].strip() or None
        return ContractCallReverted(reason=reason, method=method)

    return ChainError(f"{method} failed: {message} (code {code})", rpc_code=code)


class EvmRpcClient:
    """JSON-RPC client for one EVM endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client

    async def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.rpc_url, json=payload)

    async def call_method(self, method: str, params: Optional[list] = None) -> Any:
        """Perform one JSON-RPC call.

        Raises:
            RpcUnavailable: transport failure, timeout, or 5xx/429 from the node
            ChainError: any other error (or a subclass of it)
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(_request_ids),
        }

        try:
            response = await self._post(payload)
        except httpx.TransportError as e:
            logger.warning(f"RPC {method} transport error: {type(e).__name__}")
            raise RpcUnavailable(f"{method}: {type(e).__name__} talking to RPC") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise RpcUnavailable(f"{method}: RPC returned HTTP {response.status_code}")
        if response.status_code != 200:
            raise ChainError(f"{method}: RPC returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ChainError(f"{method}: invalid JSON from RPC") from e

        if data.get("error"):
            raise map_rpc_error(data["error"], method)

        return data.get("result")

    # Reads
    async def get_chain_id(self) -> int:
        return int(await self.call_method("eth_chainId"), 16)

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Native balance in wei."""
        return int(await self.call_method("eth_getBalance", [address, block]), 16)

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(await self.call_method("eth_getTransactionCount", [address, block]), 16)

    async def get_gas_price(self) -> int:
        return int(await self.call_method("eth_gasPrice"), 16)

    async def get_fee_data(self, eip1559: bool = True) -> dict[str, Optional[int]]:
        """Current fee parameters.

        ``max_fee_per_gas`` follows the usual 2 * base fee + tip rule. Chains
        without a base fee return only ``gas_price``.
        """
        gas_price = await self.get_gas_price()
        fee_data = {
            "gas_price": gas_price,
            "max_fee_per_gas": None,
            "max_priority_fee_per_gas": None,
        }
        if not eip1559:
            return fee_data

        block = await self.call_method("eth_getBlockByNumber", ["latest", False])
        base_fee = (block or {}).get("baseFeePerGas")
        if base_fee is None:
            return fee_data

        priority_fee = int(await self.call_method("eth_maxPriorityFeePerGas"), 16)
        fee_data["max_priority_fee_per_gas"] = priority_fee
        fee_data["max_fee_per_gas"] = int(base_fee, 16) * 2 + priority_fee
        return fee_data

    async def call(self, to: str, data: str, block: str = "latest", sender: Optional[str] = None) -> str:
        """eth_call; returns the raw hex result."""
        tx = {"to": to, "data": data}
        if sender:
            tx["from"] = sender
        return await self.call_method("eth_call", [tx, block])

    async def get_code(self, address: str, block: str = "latest") -> str:
        return await self.call_method("eth_getCode", [address, block])

    async def estimate_gas(self, tx: dict) -> int:
        return int(await self.call_method("eth_estimateGas", [tx]), 16)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self.call_method("eth_getTransactionReceipt", [tx_hash])

    # Writes
    async def send_raw_transaction(self, raw_tx_hex: str) -> str:
        """Broadcast a signed transaction; returns its hash."""
        if not raw_tx_hex.startswith("0x"):
            raw_tx_hex = f"0x{raw_tx_hex}"
        return await self.call_method("eth_sendRawTransaction", [raw_tx_hex])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> dict:
        """Poll until the transaction is mined.

        Raises:
            RpcUnavailable: not mined within ``timeout``
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt

            if loop.time() >= deadline:
                raise RpcUnavailable(f"Transaction {tx_hash} not mined after {timeout}s")
            await asyncio.sleep(poll_interval)


def receipt_status(receipt: dict) -> int:
    return int(receipt.get("status", "0x0"), 16)
