"""In-memory GasSponsor contract (dry-run backend).

Applies the deployed contract's rules so the sponsorship flow can run in
development and tests without a chain. Each method is atomic: a call that
reverts leaves state untouched.
"""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Optional

from eth_account import Account
from web3 import Web3

from nullwallet.errors import InvalidRequest
from nullwallet.sponsorship.contract import (
    DEFAULT_PARAMETERS,
    REVERT_PREFIX,
    ContractParameters,
    ExecutionReceipt,
    SponsoredTransaction,
    SponsorInfo,
    SponsorshipContract,
    SponsorshipReceipt,
    error_for_reason,
)

logger = logging.getLogger(__name__)

BASE_TX_GAS = 21000
ZERO_BYTE_GAS = 4
NONZERO_BYTE_GAS = 16

# (to, data, initiator) -> None; raise ContractCallReverted to make execution fail
CallHandler = Callable[[str, str, str], Awaitable[None]]


def _revert(reason: str, prefixed: bool = True):
    raise error_for_reason(f"{REVERT_PREFIX}{reason}" if prefixed else reason)


def _address_of(secret: str) -> str:
    try:
        return Account.from_key(secret).address
    except Exception as e:
        raise InvalidRequest("Invalid signing key") from e


def simulated_gas_used(data: str, gas_limit: int) -> int:
    """Intrinsic gas of the call data, capped at the gas limit."""
    payload = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    gas = BASE_TX_GAS + sum(NONZERO_BYTE_GAS if b else ZERO_BYTE_GAS for b in payload)
    return min(gas, gas_limit)


def _fake_hash() -> str:
    return f"0x{secrets.token_hex(32)}"


@dataclass
class _Sponsor:
    balance: int = 0
    is_active: bool = False
    total_sponsored: int = 0
    last_sponsored: int = 0


class SimulatedSponsorshipContract(SponsorshipContract):
    """GasSponsor rules applied to in-process state."""

    def __init__(
        self,
        owner_address: str,
        sponsor_secret: Optional[str] = None,
        parameters: ContractParameters = DEFAULT_PARAMETERS,
        call_handler: Optional[CallHandler] = None,
        clock: Callable[[], float] = time.time,
        address: str = "0x000000000000000000000000000000005350304e",
    ):
        self.address = address
        self.owner_address = Web3.to_checksum_address(owner_address)
        self.parameters = parameters
        self._sponsor_secret = sponsor_secret
        self._call_handler = call_handler
        self._clock = clock
        self._lock = asyncio.Lock()
        self._sponsors: dict[str, _Sponsor] = {}
        self._transactions: dict[str, SponsoredTransaction] = {}
        # sponsored_tx_hash -> worst-case cost held back from the sponsor's balance
        self._reserved: dict[str, int] = {}
        self._user_transactions: dict[str, list[str]] = {}
        self._nonce = 0
        self.contract_balance = 0
        self.total_sponsored = 0

    @property
    def sponsor_address(self) -> Optional[str]:
        return _address_of(self._sponsor_secret) if self._sponsor_secret else None

    def _sponsor_caller(self) -> str:
        if not self._sponsor_secret:
            _revert("Not an active sponsor")
        return self.sponsor_address

    def _only_owner(self, owner_secret: str) -> None:
        if _address_of(owner_secret) != self.owner_address:
            _revert("Ownable: caller is not the owner", prefixed=False)

    def _active_sponsor(self, address: str) -> _Sponsor:
        sponsor = self._sponsors.get(address.lower())
        if sponsor is None or not sponsor.is_active:
            _revert("Not an active sponsor")
        return sponsor

    # Owner administration
    async def add_sponsor(self, sponsor_address: str, value: int, owner_secret: str) -> str:
        async with self._lock:
            self._only_owner(owner_secret)
            existing = self._sponsors.get(sponsor_address.lower())
            if existing is not None and existing.is_active:
                _revert("Sponsor already exists")
            if value < self.parameters.min_sponsor_balance:
                _revert("Insufficient initial balance")

            self._sponsors[sponsor_address.lower()] = _Sponsor(balance=value, is_active=True)
            self.contract_balance += value
        logger.info(f"[SIMULATED] Added sponsor {sponsor_address} with {value} wei")
        return _fake_hash()

    async def remove_sponsor(self, sponsor_address: str, owner_secret: str) -> str:
        async with self._lock:
            self._only_owner(owner_secret)
            sponsor = self._sponsors.get(sponsor_address.lower())
            if sponsor is None or not sponsor.is_active:
                _revert("Sponsor does not exist")

            refund = sponsor.balance
            sponsor.balance = 0
            sponsor.is_active = False
            self.contract_balance -= refund
        logger.info(f"[SIMULATED] Removed sponsor {sponsor_address}, refunded {refund} wei")
        return _fake_hash()

    async def update_parameters(self, parameters: ContractParameters, owner_secret: str) -> str:
        async with self._lock:
            self._only_owner(owner_secret)
            self.parameters = parameters
        return _fake_hash()

    # Sponsor escrow
    async def add_funds(self, value: int) -> str:
        async with self._lock:
            sponsor = self._active_sponsor(self._sponsor_caller())
            sponsor.balance += value
            self.contract_balance += value
        return _fake_hash()

    async def withdraw_funds(self, amount: int) -> str:
        async with self._lock:
            sponsor = self._active_sponsor(self._sponsor_caller())
            if amount > sponsor.balance:
                _revert("Insufficient balance")
            sponsor.balance -= amount
            self.contract_balance -= amount
        return _fake_hash()

    # Two-phase protocol
    async def sponsor_transaction(
        self,
        from_address: str,
        to_address: str,
        gas_limit: int,
        gas_price: int,
        data: str = "0x",
    ) -> SponsorshipReceipt:
        async with self._lock:
            sponsor_address = self._sponsor_caller()
            sponsor = self._active_sponsor(sponsor_address)

            if from_address.lower() == to_address.lower():
                _revert("Cannot sponsor self-transaction")
            if gas_price > self.parameters.max_gas_price:
                _revert("Gas price too high")
            if gas_limit > self.parameters.max_gas_limit:
                _revert("Gas limit too high")

            estimated_cost = gas_limit * gas_price
            if sponsor.balance < self.parameters.min_sponsor_balance or sponsor.balance < estimated_cost:
                _revert("Insufficient sponsor balance")
            sponsor.balance -= estimated_cost

            self._nonce += 1
            sponsored_tx_hash = Web3.to_hex(
                Web3.solidity_keccak(
                    ["address", "address", "uint256", "uint256", "uint256"],
                    [
                        Web3.to_checksum_address(from_address),
                        Web3.to_checksum_address(to_address),
                        gas_limit,
                        gas_price,
                        self._nonce,
                    ],
                )
            )
            self._transactions[sponsored_tx_hash] = SponsoredTransaction(
                sponsored_tx_hash=sponsored_tx_hash,
                from_address=Web3.to_checksum_address(from_address),
                to_address=Web3.to_checksum_address(to_address),
                gas_limit=gas_limit,
                gas_price=gas_price,
                sponsor_address=sponsor_address,
                executed=False,
                actual_gas_used=0,
                total_cost=0,
            )
            self._reserved[sponsored_tx_hash] = estimated_cost
            self._user_transactions.setdefault(from_address.lower(), []).append(sponsored_tx_hash)

        logger.info(f"[SIMULATED] Sponsored {sponsored_tx_hash} for {from_address}")
        return SponsorshipReceipt(sponsored_tx_hash=sponsored_tx_hash, tx_hash=_fake_hash())

    async def execute_sponsored_transaction(
        self,
        sponsored_tx_hash: str,
        data: str,
        initiator_secret: str,
    ) -> ExecutionReceipt:
        initiator = _address_of(initiator_secret)

        async with self._lock:
            record = self._transactions.get(sponsored_tx_hash.lower())
            if record is None:
                _revert("Transaction not found")
            if record.executed:
                _revert("Transaction already executed")
            if record.from_address != initiator:
                _revert("Only transaction initiator can execute")

            gas_used = simulated_gas_used(data, record.gas_limit)
            cost = gas_used * record.gas_price
            sponsor = self._sponsors[record.sponsor_address.lower()]

            if self._call_handler is not None:
                await self._call_handler(record.to_address, data, initiator)

            # gas_used <= gas_limit, so the reservation always covers the cost
            sponsor.balance += self._reserved.pop(record.sponsored_tx_hash) - cost
            sponsor.total_sponsored += cost
            sponsor.last_sponsored = int(self._clock())
            self.contract_balance -= cost
            self.total_sponsored += cost
            self._transactions[record.sponsored_tx_hash] = replace(
                record, executed=True, actual_gas_used=gas_used, total_cost=cost
            )

        logger.info(f"[SIMULATED] Executed {sponsored_tx_hash}: {gas_used} gas, {cost} wei")
        return ExecutionReceipt(
            execution_tx_hash=_fake_hash(),
            sponsored_tx_hash=sponsored_tx_hash,
            gas_used=gas_used,
            effective_gas_price=record.gas_price,
        )

    # Reads
    async def get_sponsor_info(self, address: str) -> SponsorInfo:
        sponsor = self._sponsors.get(address.lower(), _Sponsor())
        return SponsorInfo(
            address=Web3.to_checksum_address(address),
            balance=sponsor.balance,
            is_active=sponsor.is_active,
            total_sponsored=sponsor.total_sponsored,
            last_sponsored=sponsor.last_sponsored,
        )

    async def get_sponsored_transaction(self, sponsored_tx_hash: str) -> SponsoredTransaction:
        record = self._transactions.get(sponsored_tx_hash.lower())
        if record is None:
            _revert("Transaction not found")
        return record

    async def get_parameters(self) -> ContractParameters:
        return self.parameters

    async def get_user_transactions(self, address: str) -> list[str]:
        return list(self._user_transactions.get(address.lower(), []))
