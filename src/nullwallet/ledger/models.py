"""SQLAlchemy models for the internal ledger and sponsorship records."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SponsoredTransferStatus(str, Enum):
    """Status of a sponsor -> execute cycle."""

    REQUESTED = "requested"      # Validated, nothing written on-chain yet
    SPONSORED = "sponsored"      # Sponsor registration mined, awaiting execution
    EXECUTED = "executed"        # Execution succeeded (terminal)
    FAILED = "failed"            # Sponsorship phase failed, nothing on-chain


class LedgerWallet(Base):
    """NullNet wallet: an opaque ``null_`` address owned by a user."""

    __tablename__ = "ledger_wallets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(25), unique=True, nullable=False, index=True)
    owner_user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    access_key_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # sha256 hex
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    balances: Mapped[list["LedgerBalance"]] = relationship(
        back_populates="wallet", lazy="selectin"
    )


class LedgerBalance(Base):
    """Balance of one asset in one ledger wallet.

    ``version`` is bumped on every update; a concurrent writer that read an
    older version fails its flush instead of overwriting.
    """

    __tablename__ = "ledger_balances"
    __table_args__ = (Index("ix_ledger_balances_wallet_asset", "wallet_id", "asset", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("ledger_wallets.id"), nullable=False)
    asset: Mapped[str] = mapped_column(String(20), nullable=False)  # e.g., GOLD, NULL
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    wallet: Mapped["LedgerWallet"] = relationship(back_populates="balances")

    __mapper_args__ = {"version_id_col": version}


class LedgerTransfer(Base):
    """Record of a completed ledger transfer.

    Written in the same database transaction as the balance mutation.
    """

    __tablename__ = "ledger_transfers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    transfer_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    from_address: Mapped[Optional[str]] = mapped_column(String(25), nullable=True, index=True)  # None = top-up
    to_address: Mapped[str] = mapped_column(String(25), nullable=False, index=True)
    asset: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SponsoredTransfer(Base):
    """Local record of a gas-sponsored token transfer.

    Keyed by the caller's idempotency key so a retried request re-targets the
    pending on-chain record instead of sponsoring a second time.
    """

    __tablename__ = "sponsored_transfers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    chain_id: Mapped[str] = mapped_column(String(32), nullable=False)
    from_address: Mapped[str] = mapped_column(String(64), nullable=False)
    token_contract: Mapped[str] = mapped_column(String(64), nullable=False)
    receiver_address: Mapped[str] = mapped_column(String(64), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    gas_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gas_price: Mapped[int] = mapped_column(BigInteger, nullable=False)  # wei
    sponsored_tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True, index=True)
    sponsor_tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    execution_tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    gas_used: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    status: Mapped[SponsoredTransferStatus] = mapped_column(
        String(20), default=SponsoredTransferStatus.REQUESTED, nullable=False
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
