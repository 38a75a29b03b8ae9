"""Service wiring and balance reads."""

from nullwallet.services.balance_service import BalanceService
from nullwallet.services.factory import TransferServices, build_services

__all__ = [
    "BalanceService",
    "TransferServices",
    "build_services",
]
