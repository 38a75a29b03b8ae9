"""Gas sponsorship for ERC-20 transfers."""

from nullwallet.sponsorship.contract import (
    ContractParameters,
    ExecutionReceipt,
    SponsoredTransaction,
    SponsorInfo,
    SponsorshipContract,
    SponsorshipReceipt,
)
from nullwallet.sponsorship.coordinator import GasSponsorshipCoordinator
from nullwallet.sponsorship.onchain import OnChainSponsorshipContract
from nullwallet.sponsorship.simulated import SimulatedSponsorshipContract

__all__ = [
    "ContractParameters",
    "ExecutionReceipt",
    "SponsoredTransaction",
    "SponsorInfo",
    "SponsorshipContract",
    "SponsorshipReceipt",
    "GasSponsorshipCoordinator",
    "OnChainSponsorshipContract",
    "SimulatedSponsorshipContract",
]
