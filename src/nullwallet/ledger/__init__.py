"""Ledger module for NullNet balances and sponsorship records."""

from nullwallet.ledger.accounts import LedgerAccount, validate_address
from nullwallet.ledger.database import close_db, get_db, init_db
from nullwallet.ledger.models import (
    LedgerBalance,
    LedgerTransfer,
    LedgerWallet,
    SponsoredTransfer,
    SponsoredTransferStatus,
)
from nullwallet.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "LedgerWallet",
    "LedgerBalance",
    "LedgerTransfer",
    "SponsoredTransfer",
    # Enums
    "SponsoredTransferStatus",
    # Database
    "get_db",
    "init_db",
    "close_db",
    "LedgerRepository",
    # Service
    "LedgerAccount",
    "validate_address",
]
