"""NullNet ledger transfer executor."""

import logging
from decimal import Decimal
from typing import Optional

from nullwallet.chains import Chain
from nullwallet.errors import LedgerAuthorizationError
from nullwallet.ledger.accounts import LedgerAccount
from nullwallet.transfer.base import TransferResult, TransferStatus

logger = logging.getLogger(__name__)


class LedgerTransferExecutor:
    """Moves ledger assets between NullNet wallets.

    When ``require_access_key`` is set the sender must present the access key
    issued with the wallet as ``sender_secret``.
    """

    def __init__(self, ledger: LedgerAccount, require_access_key: bool = True):
        self.ledger = ledger
        self.require_access_key = require_access_key

    async def execute(
        self,
        chain: Chain,
        token_symbol: str,
        sender_address: str,
        sender_secret: Optional[str],
        receiver_address: str,
        amount: Decimal,
    ) -> TransferResult:
        ticker = token_symbol.upper()
        self.ledger.require_address(sender_address, receiver_address)

        if self.require_access_key:
            if not await self.ledger.verify_access_key(sender_address, sender_secret):
                logger.warning(f"Rejected ledger transfer from {sender_address}: bad access key")
                raise LedgerAuthorizationError(
                    f"Access key does not authorize debits from {sender_address}"
                )

        transfer_id = await self.ledger.transfer(sender_address, receiver_address, ticker, amount)

        return TransferResult(
            success=True,
            chain_id=chain.id,
            token_symbol=ticker,
            from_address=sender_address,
            to_address=receiver_address,
            amount=amount,
            status=TransferStatus.COMPLETED,
            ledger_transfer_id=transfer_id,
            extra={"type": "ledger"},
        )
