"""EVM transfer executors.

Supports native value transfers and ERC-20 ``transfer`` calls on every
chain in the registry with an RPC endpoint. Both share one submission path:

1. Derive the sender account from its key
2. Under the per-sender nonce lock: fetch pending nonce and fee data,
   sign with eth_account, broadcast
3. Optionally wait for the receipt
"""

import logging
from decimal import Decimal
from typing import Callable, Optional

from eth_abi import encode
from eth_account import Account
from web3 import Web3

from nullwallet.chains import Chain
from nullwallet.errors import (
    ContractCallReverted,
    InvalidAddressFormat,
    InvalidRequest,
)
from nullwallet.transfer.base import (
    NATIVE_TRANSFER_GAS,
    TOKEN_TRANSFER_GAS,
    TransferResult,
    TransferStatus,
)
from nullwallet.transfer.rpc import EvmRpcClient, receipt_status
from nullwallet.utils.amounts import from_base_units, to_base_units
from nullwallet.utils.locks import keyed_lock

logger = logging.getLogger(__name__)

TRANSFER_SELECTOR = Web3.keccak(text="transfer(address,uint256)")[:4]

RpcFactory = Callable[[Chain], EvmRpcClient]


def nonce_lock_key(chain_id: str, address: str) -> str:
    return f"nonce:{chain_id}:{address.lower()}"


def checksum_address(address: str, field_name: str = "address") -> str:
    """Validate and checksum an EVM address."""
    if not address or not Web3.is_address(address):
        raise InvalidAddressFormat(f"Invalid EVM {field_name}: {address!r}")
    return Web3.to_checksum_address(address)


def load_account(secret: str, expected_address: Optional[str] = None):
    """Load the signing account from a private key.

    The key itself never appears in errors or logs.
    """
    try:
        account = Account.from_key(secret)
    except Exception as e:
        raise InvalidRequest("Invalid sender private key") from e

    if expected_address and account.address.lower() != expected_address.lower():
        raise InvalidRequest("Sender private key does not match sender wallet address")
    return account


def encode_erc20_transfer(receiver: str, amount_units: int) -> str:
    """Call data for ``transfer(address,uint256)``."""
    return Web3.to_hex(TRANSFER_SELECTOR + encode(["address", "uint256"], [receiver, amount_units]))


class EvmTransferExecutor:
    """Shared signing and submission for EVM executors."""

    def __init__(
        self,
        rpc_factory: Optional[RpcFactory] = None,
        rpc_timeout: float = 10.0,
        wait_for_confirmation: bool = False,
        confirmation_timeout: float = 120.0,
    ):
        self._rpc_factory = rpc_factory or (
            lambda chain: EvmRpcClient(chain.rpc_url, timeout=rpc_timeout)
        )
        self.wait_for_confirmation = wait_for_confirmation
        self.confirmation_timeout = confirmation_timeout

    def rpc_for(self, chain: Chain) -> EvmRpcClient:
        if chain.is_ledger:
            raise InvalidRequest(f"{chain.id} is not an EVM chain")
        return self._rpc_factory(chain)

    async def _fee_fields(self, rpc: EvmRpcClient, chain: Chain) -> tuple[dict, int]:
        """Fee fields for the transaction plus the per-gas price used for fee_paid."""
        fee_data = await rpc.get_fee_data(eip1559=chain.supports_eip1559)
        if fee_data["max_fee_per_gas"] is not None:
            return (
                {
                    "type": 2,
                    "maxFeePerGas": fee_data["max_fee_per_gas"],
                    "maxPriorityFeePerGas": fee_data["max_priority_fee_per_gas"],
                },
                fee_data["max_fee_per_gas"],
            )
        return {"gasPrice": fee_data["gas_price"]}, fee_data["gas_price"]

    async def submit(
        self,
        chain: Chain,
        account,
        tx: dict,
        wait: Optional[bool] = None,
    ) -> tuple[str, Optional[dict], Decimal]:
        """Sign and broadcast ``tx`` from ``account``.

        Nonce fetch through broadcast is serialized per (chain, sender) so
        concurrent sends from one account never reuse a nonce.

        Args:
            wait: force (or skip) waiting for the receipt; defaults to the
                executor's ``wait_for_confirmation``

        Returns:
            (tx_hash, receipt or None, maximum fee in native units)
        """
        rpc = self.rpc_for(chain)
        if wait is None:
            wait = self.wait_for_confirmation

        async with keyed_lock(nonce_lock_key(chain.id, account.address), operation="broadcast"):
            nonce = await rpc.get_transaction_count(account.address, "pending")
            fee_fields, price_per_gas = await self._fee_fields(rpc, chain)

            tx = {
                **tx,
                **fee_fields,
                "nonce": nonce,
                "chainId": chain.numeric_chain_id,
            }
            signed = account.sign_transaction(tx)
            tx_hash = await rpc.send_raw_transaction(Web3.to_hex(signed.raw_transaction))

        max_fee = from_base_units(price_per_gas * tx["gas"], chain.native_currency.decimals)
        logger.info(f"Broadcast {tx_hash} on {chain.id} (nonce {nonce})")

        receipt = None
        if wait:
            receipt = await rpc.wait_for_receipt(tx_hash, timeout=self.confirmation_timeout)
            if receipt_status(receipt) != 1:
                logger.error(f"Transaction {tx_hash} reverted on {chain.id}")
                raise ContractCallReverted(f"Transaction {tx_hash} reverted on-chain")

        return tx_hash, receipt, max_fee

    @staticmethod
    def _block_number(receipt: Optional[dict]) -> Optional[int]:
        if receipt and receipt.get("blockNumber"):
            return int(receipt["blockNumber"], 16)
        return None

    def _status(self, receipt: Optional[dict]) -> TransferStatus:
        return TransferStatus.CONFIRMED if receipt else TransferStatus.BROADCAST


class NativeTransferExecutor(EvmTransferExecutor):
    """Plain value transfer of a chain's native currency."""

    async def execute(
        self,
        chain: Chain,
        sender_secret: str,
        receiver_address: str,
        amount: Decimal,
        decimals: int,
        sender_address: Optional[str] = None,
        token_symbol: Optional[str] = None,
    ) -> TransferResult:
        receiver = checksum_address(receiver_address, "receiver address")
        account = load_account(sender_secret, sender_address)
        try:
            value = to_base_units(amount, decimals)
        except ValueError as e:
            raise InvalidRequest(str(e)) from e

        tx = {
            "to": receiver,
            "value": value,
            "gas": NATIVE_TRANSFER_GAS,
        }
        tx_hash, receipt, max_fee = await self.submit(chain, account, tx)

        symbol = token_symbol or chain.native_currency.symbol
        logger.info(f"Sent {amount} {symbol} on {chain.id}: {account.address} -> {receiver}")
        return TransferResult(
            success=True,
            chain_id=chain.id,
            token_symbol=symbol,
            from_address=account.address,
            to_address=receiver,
            amount=amount,
            status=self._status(receipt),
            transaction_hash=tx_hash,
            block_number=self._block_number(receipt),
            fee_paid=max_fee,
            extra={"type": "native", "value": str(value)},
        )


class TokenTransferExecutor(EvmTransferExecutor):
    """ERC-20 ``transfer(address,uint256)`` sent to the token contract."""

    gas_limit = TOKEN_TRANSFER_GAS

    async def execute(
        self,
        chain: Chain,
        token_contract_address: str,
        token_decimals: int,
        sender_secret: str,
        receiver_address: str,
        amount: Decimal,
        sender_address: Optional[str] = None,
        token_symbol: Optional[str] = None,
    ) -> TransferResult:
        # Registry addresses are trusted; only their format is checked
        contract = checksum_address(token_contract_address.lower(), "token contract")
        receiver = checksum_address(receiver_address, "receiver address")
        account = load_account(sender_secret, sender_address)
        try:
            units = to_base_units(amount, token_decimals)
        except ValueError as e:
            raise InvalidRequest(str(e)) from e

        tx = {
            "to": contract,
            "value": 0,
            "gas": self.gas_limit,
            "data": encode_erc20_transfer(receiver, units),
        }
        tx_hash, receipt, max_fee = await self.submit(chain, account, tx)

        symbol = token_symbol or contract
        logger.info(f"Sent {amount} {symbol} on {chain.id}: {account.address} -> {receiver}")
        return TransferResult(
            success=True,
            chain_id=chain.id,
            token_symbol=symbol,
            from_address=account.address,
            to_address=receiver,
            amount=amount,
            status=self._status(receipt),
            transaction_hash=tx_hash,
            block_number=self._block_number(receipt),
            fee_paid=max_fee,
            extra={"type": "erc20", "contract": contract, "units": str(units)},
        )
