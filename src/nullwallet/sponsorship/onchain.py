"""GasSponsor contract backend for a deployed contract."""

import logging
from typing import Optional

from eth_abi import decode, encode
from web3 import Web3

from nullwallet.chains import Chain
from nullwallet.config import ZERO_ADDRESS
from nullwallet.errors import (
    ContractCallReverted,
    SponsorKeyMissing,
    SponsorshipError,
    UnknownSponsoredTransaction,
)
from nullwallet.sponsorship.contract import (
    ContractParameters,
    ExecutionReceipt,
    SponsoredTransaction,
    SponsorInfo,
    SponsorshipContract,
    SponsorshipReceipt,
    error_for_reason,
)
from nullwallet.transfer.evm import EvmTransferExecutor, load_account
from nullwallet.transfer.rpc import EvmRpcClient

logger = logging.getLogger(__name__)

GAS_ESTIMATE_BUFFER = 1.2


def selector(signature: str) -> bytes:
    return Web3.keccak(text=signature)[:4]


def _bytes32(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value).rjust(32, b"\0")


def _hex_bytes(data: str) -> bytes:
    return bytes.fromhex(data[2:] if data.startswith("0x") else data)


class OnChainSponsorshipContract(SponsorshipContract):
    """Talks to a deployed GasSponsor contract over JSON-RPC.

    Phase 2 and escrow calls are signed with the sponsor key; phase 3 is
    signed by the initiator because the contract only lets the declared
    ``from`` address execute.
    """

    def __init__(
        self,
        chain: Chain,
        address: str,
        rpc: EvmRpcClient,
        sponsor_secret: Optional[str] = None,
        confirmation_timeout: float = 120.0,
    ):
        self.chain = chain
        self.address = Web3.to_checksum_address(address)
        self.rpc = rpc
        self._sponsor_secret = sponsor_secret
        self._submitter = EvmTransferExecutor(
            rpc_factory=lambda _chain: rpc,
            confirmation_timeout=confirmation_timeout,
        )

    @property
    def sponsor_address(self) -> Optional[str]:
        if not self._sponsor_secret:
            return None
        return load_account(self._sponsor_secret).address

    def _sponsor_account(self):
        if not self._sponsor_secret:
            raise SponsorKeyMissing(f"No sponsor signing key configured for {self.chain.id}")
        return load_account(self._sponsor_secret)

    # Low-level helpers
    async def _read(self, signature: str, arg_types: list, args: list, out_types: list) -> tuple:
        data = Web3.to_hex(selector(signature) + encode(arg_types, args))
        try:
            raw = await self.rpc.call(self.address, data)
        except ContractCallReverted as e:
            raise error_for_reason(e.reason) from e
        if not raw or raw == "0x":
            raise SponsorshipError(f"No GasSponsor contract at {self.address} on {self.chain.id}")
        return decode(out_types, _hex_bytes(raw))

    async def _write(
        self,
        account,
        signature: str,
        arg_types: list,
        args: list,
        value: int = 0,
    ) -> dict:
        """Estimate, sign, broadcast and wait for a contract call.

        The gas estimate doubles as a pre-flight: a call that would revert
        fails here with the contract's reason and nothing is broadcast.
        """
        data = Web3.to_hex(selector(signature) + encode(arg_types, args))
        try:
            gas = await self.rpc.estimate_gas({
                "from": account.address,
                "to": self.address,
                "data": data,
                "value": hex(value),
            })
            tx_hash, receipt, _ = await self._submitter.submit(
                self.chain,
                account,
                {
                    "to": self.address,
                    "value": value,
                    "gas": int(gas * GAS_ESTIMATE_BUFFER),
                    "data": data,
                },
                wait=True,
            )
        except ContractCallReverted as e:
            logger.warning(f"GasSponsor.{signature.split('(')[0]} reverted: {e.reason}")
            raise error_for_reason(e.reason) from e
        return receipt

    def _sponsored_id_from_logs(self, receipt: dict) -> str:
        """The TransactionSponsored event indexes the sponsored id as topics[1]."""
        for log in receipt.get("logs", []):
            if log.get("address", "").lower() != self.address.lower():
                continue
            topics = log.get("topics", [])
            if len(topics) >= 2:
                return topics[1]
        raise SponsorshipError(
            f"No TransactionSponsored event in receipt {receipt.get('transactionHash')}"
        )

    # Owner administration
    async def add_sponsor(self, sponsor_address: str, value: int, owner_secret: str) -> str:
        receipt = await self._write(
            load_account(owner_secret), "addSponsor(address)", ["address"], [sponsor_address], value=value
        )
        return receipt["transactionHash"]

    async def remove_sponsor(self, sponsor_address: str, owner_secret: str) -> str:
        receipt = await self._write(
            load_account(owner_secret), "removeSponsor(address)", ["address"], [sponsor_address]
        )
        return receipt["transactionHash"]

    async def update_parameters(self, parameters: ContractParameters, owner_secret: str) -> str:
        receipt = await self._write(
            load_account(owner_secret),
            "updateParameters(uint256,uint256,uint256)",
            ["uint256", "uint256", "uint256"],
            [parameters.min_sponsor_balance, parameters.max_gas_price, parameters.max_gas_limit],
        )
        return receipt["transactionHash"]

    # Sponsor escrow
    async def add_funds(self, value: int) -> str:
        receipt = await self._write(self._sponsor_account(), "addFunds()", [], [], value=value)
        return receipt["transactionHash"]

    async def withdraw_funds(self, amount: int) -> str:
        receipt = await self._write(
            self._sponsor_account(), "withdrawFunds(uint256)", ["uint256"], [amount]
        )
        return receipt["transactionHash"]

    # Two-phase protocol
    async def sponsor_transaction(
        self,
        from_address: str,
        to_address: str,
        gas_limit: int,
        gas_price: int,
        data: str = "0x",
    ) -> SponsorshipReceipt:
        receipt = await self._write(
            self._sponsor_account(),
            "sponsorTransaction(address,address,bytes,uint256,uint256)",
            ["address", "address", "bytes", "uint256", "uint256"],
            [from_address, to_address, _hex_bytes(data), gas_price, gas_limit],
        )
        sponsored_tx_hash = self._sponsored_id_from_logs(receipt)
        logger.info(
            f"Sponsored {sponsored_tx_hash} on {self.chain.id} "
            f"(from {from_address}, gas {gas_limit} @ {gas_price})"
        )
        return SponsorshipReceipt(sponsored_tx_hash=sponsored_tx_hash, tx_hash=receipt["transactionHash"])

    async def execute_sponsored_transaction(
        self,
        sponsored_tx_hash: str,
        data: str,
        initiator_secret: str,
    ) -> ExecutionReceipt:
        receipt = await self._write(
            load_account(initiator_secret),
            "executeSponsoredTransaction(bytes32,bytes)",
            ["bytes32", "bytes"],
            [_bytes32(sponsored_tx_hash), _hex_bytes(data)],
        )
        return ExecutionReceipt(
            execution_tx_hash=receipt["transactionHash"],
            sponsored_tx_hash=sponsored_tx_hash,
            gas_used=int(receipt.get("gasUsed", "0x0"), 16),
            effective_gas_price=int(receipt.get("effectiveGasPrice", "0x0"), 16),
        )

    # Reads
    async def get_sponsor_info(self, address: str) -> SponsorInfo:
        balance, is_active, total_sponsored, last_sponsored = await self._read(
            "getSponsorInfo(address)",
            ["address"],
            [address],
            ["uint256", "bool", "uint256", "uint256"],
        )
        return SponsorInfo(
            address=Web3.to_checksum_address(address),
            balance=balance,
            is_active=is_active,
            total_sponsored=total_sponsored,
            last_sponsored=last_sponsored,
        )

    async def get_sponsored_transaction(self, sponsored_tx_hash: str) -> SponsoredTransaction:
        (
            from_address,
            to_address,
            gas_limit,
            gas_price,
            sponsor_address,
            executed,
            actual_gas_used,
            total_cost,
        ) = await self._read(
            "sponsoredTransactions(bytes32)",
            ["bytes32"],
            [_bytes32(sponsored_tx_hash)],
            ["address", "address", "uint256", "uint256", "address", "bool", "uint256", "uint256"],
        )
        if from_address.lower() == ZERO_ADDRESS:
            raise UnknownSponsoredTransaction(f"No sponsored transaction {sponsored_tx_hash}")

        return SponsoredTransaction(
            sponsored_tx_hash=sponsored_tx_hash,
            from_address=Web3.to_checksum_address(from_address),
            to_address=Web3.to_checksum_address(to_address),
            gas_limit=gas_limit,
            gas_price=gas_price,
            sponsor_address=Web3.to_checksum_address(sponsor_address),
            executed=executed,
            actual_gas_used=actual_gas_used,
            total_cost=total_cost,
        )

    async def get_parameters(self) -> ContractParameters:
        (min_balance,) = await self._read("minSponsorBalance()", [], [], ["uint256"])
        (max_gas_price,) = await self._read("maxGasPrice()", [], [], ["uint256"])
        (max_gas_limit,) = await self._read("maxGasLimit()", [], [], ["uint256"])
        return ContractParameters(min_balance, max_gas_price, max_gas_limit)
