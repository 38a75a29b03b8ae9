"""Repository for ledger operations."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nullwallet.errors import InsufficientBalance, UnknownWallet
from nullwallet.ledger.models import (
    LedgerBalance,
    LedgerTransfer,
    LedgerWallet,
    SponsoredTransfer,
    SponsoredTransferStatus,
)


class LedgerRepository:
    """Repository for all ledger-related database operations.

    Balance methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Wallet operations
    async def get_wallet(self, address: str) -> Optional[LedgerWallet]:
        """Get wallet by address."""
        stmt = select(LedgerWallet).where(LedgerWallet.address == address)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_wallet(
        self,
        address: str,
        owner_user_id: Optional[str] = None,
        access_key_hash: Optional[str] = None,
    ) -> LedgerWallet:
        wallet = LedgerWallet(
            address=address,
            owner_user_id=owner_user_id,
            access_key_hash=access_key_hash,
        )
        self.session.add(wallet)
        await self.session.flush()
        return wallet

    async def get_or_create_wallet(self, address: str) -> LedgerWallet:
        wallet = await self.get_wallet(address)
        if wallet is None:
            wallet = await self.create_wallet(address)
        return wallet

    async def get_wallets_by_owner(self, owner_user_id: str) -> list[LedgerWallet]:
        stmt = (
            select(LedgerWallet)
            .where(LedgerWallet.owner_user_id == owner_user_id)
            .order_by(LedgerWallet.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Balance operations
    async def get_balance(self, address: str, asset: str) -> Optional[LedgerBalance]:
        """Get a wallet's balance row for an asset."""
        stmt = (
            select(LedgerBalance)
            .join(LedgerWallet)
            .where(LedgerWallet.address == address, LedgerBalance.asset == asset.upper())
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all_balances(self, address: str) -> list[LedgerBalance]:
        """Get all balance rows of a wallet."""
        stmt = (
            select(LedgerBalance)
            .join(LedgerWallet)
            .where(LedgerWallet.address == address)
            .order_by(LedgerBalance.asset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_or_create_balance(
        self, address: str, asset: str, open_wallet: bool = False
    ) -> LedgerBalance:
        """Get or create a balance row.

        Raises:
            UnknownWallet: the wallet does not exist and ``open_wallet`` is off
        """
        balance = await self.get_balance(address, asset)
        if balance is None:
            if open_wallet:
                wallet = await self.get_or_create_wallet(address)
            else:
                wallet = await self.get_wallet(address)
                if wallet is None:
                    raise UnknownWallet(f"Wallet not found: {address}", address=address)
            balance = LedgerBalance(wallet_id=wallet.id, asset=asset.upper(), amount=Decimal("0"))
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def credit_balance(
        self, address: str, asset: str, amount: Decimal, open_wallet: bool = False
    ) -> LedgerBalance:
        """Add amount to a wallet balance."""
        balance = await self.get_or_create_balance(address, asset, open_wallet)
        balance.amount += amount
        await self.session.flush()
        return balance

    async def debit_balance(self, address: str, asset: str, amount: Decimal) -> LedgerBalance:
        """Subtract amount from a wallet balance. Raises InsufficientBalance if too low."""
        balance = await self.get_balance(address, asset)
        available = balance.amount if balance is not None else Decimal("0")
        if balance is None or available < amount:
            raise InsufficientBalance(
                f"Insufficient balance: have {available} {asset.upper()}, need {amount}",
                address=address,
            )
        balance.amount -= amount
        await self.session.flush()
        return balance

    # Transfer log
    async def record_transfer(
        self,
        transfer_id: str,
        from_address: Optional[str],
        to_address: str,
        asset: str,
        amount: Decimal,
    ) -> LedgerTransfer:
        transfer = LedgerTransfer(
            transfer_id=transfer_id,
            from_address=from_address,
            to_address=to_address,
            asset=asset.upper(),
            amount=amount,
        )
        self.session.add(transfer)
        await self.session.flush()
        return transfer

    async def get_transfers(self, address: str, limit: int = 50) -> list[LedgerTransfer]:
        """Get recent transfers in or out of a wallet."""
        stmt = (
            select(LedgerTransfer)
            .where(
                (LedgerTransfer.from_address == address) | (LedgerTransfer.to_address == address)
            )
            .order_by(LedgerTransfer.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Sponsored transfer operations
    async def get_sponsored_transfer(self, idempotency_key: str) -> Optional[SponsoredTransfer]:
        stmt = select(SponsoredTransfer).where(SponsoredTransfer.idempotency_key == idempotency_key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_sponsored_transfer(self, **fields) -> SponsoredTransfer:
        record = SponsoredTransfer(**fields)
        self.session.add(record)
        await self.session.flush()
        return record

    async def update_sponsored_transfer(
        self,
        idempotency_key: str,
        status: SponsoredTransferStatus,
        **fields,
    ) -> Optional[SponsoredTransfer]:
        """Move a sponsored transfer to a new status, setting any extra columns."""
        record = await self.get_sponsored_transfer(idempotency_key)
        if record is None:
            return None

        record.status = status
        for name, value in fields.items():
            setattr(record, name, value)
        if status == SponsoredTransferStatus.EXECUTED:
            record.executed_at = datetime.now(timezone.utc)
        await self.session.flush()
        return record
