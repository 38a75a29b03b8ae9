"""Interface to the GasSponsor accounting contract.

The contract keeps per-sponsor escrow balances and a record per sponsored
transaction. A sponsor registers a transaction (phase 2) and the declared
initiator then executes it exactly once (phase 3). Registration holds back
the worst-case cost (gas limit times gas price) from the sponsor's escrow;
execution refunds whatever the gas actually used did not consume.

Two backends implement ``SponsorshipContract``:
- ``OnChainSponsorshipContract`` (onchain.py) talks to a deployed contract
- ``SimulatedSponsorshipContract`` (simulated.py) models it in memory
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Optional

from nullwallet.errors import (
    AlreadyExecuted,
    ContractCallReverted,
    GasLimitTooHigh,
    GasPriceTooHigh,
    InsufficientSponsorBalance,
    NotContractOwner,
    NotInitiator,
    SelfSponsorshipForbidden,
    SponsorAlreadyExists,
    SponsorNotActive,
    SponsorshipError,
    UnknownSponsoredTransaction,
    WalletError,
)

# Deploy-time defaults, owner-adjustable afterwards
MIN_SPONSOR_BALANCE = 10**16           # 0.01 native
MAX_GAS_PRICE = 100 * 10**9            # 100 gwei
MAX_GAS_LIMIT = 500000

REVERT_PREFIX = "GasSponsor: "

# Revert reason (without prefix) -> error class
REVERT_REASONS: dict[str, type[SponsorshipError]] = {
    "Insufficient initial balance": InsufficientSponsorBalance,
    "Insufficient sponsor balance": InsufficientSponsorBalance,
    "Insufficient balance": InsufficientSponsorBalance,
    "Sponsor already exists": SponsorAlreadyExists,
    "Sponsor does not exist": SponsorNotActive,
    "Not an active sponsor": SponsorNotActive,
    "Cannot sponsor self-transaction": SelfSponsorshipForbidden,
    "Gas price too high": GasPriceTooHigh,
    "Gas limit too high": GasLimitTooHigh,
    "Transaction already executed": AlreadyExecuted,
    "Only transaction initiator can execute": NotInitiator,
    "Transaction not found": UnknownSponsoredTransaction,
    "Ownable: caller is not the owner": NotContractOwner,
}


def error_for_reason(reason: Optional[str]) -> WalletError:
    """Map a contract revert reason to its sponsorship error.

    The reason is kept verbatim as the error message.
    """
    if not reason:
        return ContractCallReverted(reason=None)
    key = reason[len(REVERT_PREFIX):] if reason.startswith(REVERT_PREFIX) else reason
    error_class = REVERT_REASONS.get(key)
    if error_class is None:
        return ContractCallReverted(reason=reason)
    return error_class(reason)


@dataclass(frozen=True)
class ContractParameters:
    min_sponsor_balance: int   # wei
    max_gas_price: int         # wei
    max_gas_limit: int


DEFAULT_PARAMETERS = ContractParameters(MIN_SPONSOR_BALANCE, MAX_GAS_PRICE, MAX_GAS_LIMIT)


@dataclass(frozen=True)
class SponsorInfo:
    address: str
    balance: int             # escrowed wei
    is_active: bool
    total_sponsored: int     # wei
    last_sponsored: int      # unix timestamp, 0 if never

    def to_dict(self) -> dict:
        return {k: str(v) if isinstance(v, int) and not isinstance(v, bool) else v
                for k, v in asdict(self).items()}


@dataclass(frozen=True)
class SponsoredTransaction:
    """On-chain record of one sponsor -> execute cycle."""

    sponsored_tx_hash: str
    from_address: str
    to_address: str
    gas_limit: int
    gas_price: int
    sponsor_address: str
    executed: bool
    actual_gas_used: int
    total_cost: int

    def to_dict(self) -> dict:
        return {
            "sponsoredTxHash": self.sponsored_tx_hash,
            "from": self.from_address,
            "to": self.to_address,
            "gasLimit": str(self.gas_limit),
            "gasPrice": str(self.gas_price),
            "sponsor": self.sponsor_address,
            "executed": self.executed,
            "actualGasUsed": str(self.actual_gas_used),
            "totalCost": str(self.total_cost),
        }


@dataclass(frozen=True)
class SponsorshipReceipt:
    """Result of phase 2."""

    sponsored_tx_hash: str
    tx_hash: str             # hash of the sponsor's registration transaction


@dataclass(frozen=True)
class ExecutionReceipt:
    """Result of phase 3."""

    execution_tx_hash: str
    sponsored_tx_hash: str
    gas_used: int
    effective_gas_price: int


class SponsorshipContract(ABC):
    """Async interface to one GasSponsor deployment.

    Write methods raise the sponsorship error matching the contract's revert
    reason; nothing is retried.
    """

    address: str

    @property
    @abstractmethod
    def sponsor_address(self) -> Optional[str]:
        """Address of the configured sponsor signer, None if no key is set."""
        pass

    # Owner administration
    @abstractmethod
    async def add_sponsor(self, sponsor_address: str, value: int, owner_secret: str) -> str:
        """Register a sponsor with an initial escrow ``value`` (wei)."""
        pass

    @abstractmethod
    async def remove_sponsor(self, sponsor_address: str, owner_secret: str) -> str:
        """Refund the sponsor's whole balance and deactivate it."""
        pass

    @abstractmethod
    async def update_parameters(self, parameters: ContractParameters, owner_secret: str) -> str:
        pass

    # Sponsor escrow
    @abstractmethod
    async def add_funds(self, value: int) -> str:
        pass

    @abstractmethod
    async def withdraw_funds(self, amount: int) -> str:
        pass

    # Two-phase protocol
    @abstractmethod
    async def sponsor_transaction(
        self,
        from_address: str,
        to_address: str,
        gas_limit: int,
        gas_price: int,
        data: str = "0x",
    ) -> SponsorshipReceipt:
        """Phase 2, signed by the sponsor."""
        pass

    @abstractmethod
    async def execute_sponsored_transaction(
        self,
        sponsored_tx_hash: str,
        data: str,
        initiator_secret: str,
    ) -> ExecutionReceipt:
        """Phase 3, signed by the transaction's declared initiator."""
        pass

    # Reads
    @abstractmethod
    async def get_sponsor_info(self, address: str) -> SponsorInfo:
        pass

    @abstractmethod
    async def get_sponsored_transaction(self, sponsored_tx_hash: str) -> SponsoredTransaction:
        """Raises UnknownSponsoredTransaction if no such record exists."""
        pass

    @abstractmethod
    async def get_parameters(self) -> ContractParameters:
        pass
