"""Base types for transfer execution.

Transfer flow:
1. Dispatcher validates the request and classifies (chain, token)
2. Exactly one executor builds and submits the transfer
3. Executor returns a TransferResult; nothing is retried at this layer
"""

import logging
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)

NATIVE_TRANSFER_GAS = 21000
TOKEN_TRANSFER_GAS = 100000


class TransferStatus(str, Enum):
    """Status of a transfer as reported to the caller."""

    BROADCAST = "broadcast"      # Accepted by the node, not yet mined
    CONFIRMED = "confirmed"      # Receipt with status 1
    COMPLETED = "completed"      # Ledger transfer committed
    FAILED = "failed"            # Receipt with status 0


@dataclass(frozen=True)
class TransferResult:
    """Result of one transfer attempt. Never mutated after creation."""

    success: bool
    chain_id: str
    token_symbol: str
    from_address: str
    to_address: str
    amount: Decimal
    status: TransferStatus = TransferStatus.BROADCAST
    transaction_hash: Optional[str] = None     # EVM chains
    ledger_transfer_id: Optional[str] = None   # NullNet
    gas_sponsored: bool = False
    sponsorship_details: Optional[dict[str, Any]] = None
    block_number: Optional[int] = None
    fee_paid: Optional[Decimal] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Render for the API."""
        data = asdict(self)
        data["amount"] = str(self.amount)
        data["status"] = self.status.value
        data["fee_paid"] = str(self.fee_paid) if self.fee_paid is not None else None
        return data

