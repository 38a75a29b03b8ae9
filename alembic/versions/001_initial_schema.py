"""Initial schema: ledger wallets, balances, transfers and sponsored transfers.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Ledger wallets table
    op.create_table(
        'ledger_wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('address', sa.String(25), nullable=False),
        sa.Column('owner_user_id', sa.String(255), nullable=True),
        sa.Column('access_key_hash', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ledger_wallets_address', 'ledger_wallets', ['address'], unique=True)
    op.create_index('ix_ledger_wallets_owner_user_id', 'ledger_wallets', ['owner_user_id'])

    # Ledger balances table
    op.create_table(
        'ledger_balances',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('asset', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['wallet_id'], ['ledger_wallets.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_ledger_balances_wallet_asset', 'ledger_balances', ['wallet_id', 'asset'], unique=True
    )

    # Ledger transfers table
    op.create_table(
        'ledger_transfers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('transfer_id', sa.String(64), nullable=False),
        sa.Column('from_address', sa.String(25), nullable=True),
        sa.Column('to_address', sa.String(25), nullable=False),
        sa.Column('asset', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ledger_transfers_transfer_id', 'ledger_transfers', ['transfer_id'], unique=True)
    op.create_index('ix_ledger_transfers_from_address', 'ledger_transfers', ['from_address'])
    op.create_index('ix_ledger_transfers_to_address', 'ledger_transfers', ['to_address'])

    # Sponsored transfers table
    op.create_table(
        'sponsored_transfers',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('idempotency_key', sa.String(128), nullable=False),
        sa.Column('chain_id', sa.String(32), nullable=False),
        sa.Column('from_address', sa.String(64), nullable=False),
        sa.Column('token_contract', sa.String(64), nullable=False),
        sa.Column('receiver_address', sa.String(64), nullable=False),
        sa.Column('token_symbol', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(36, 18), nullable=False),
        sa.Column('gas_limit', sa.BigInteger(), nullable=False),
        sa.Column('gas_price', sa.BigInteger(), nullable=False),
        sa.Column('sponsored_tx_hash', sa.String(66), nullable=True),
        sa.Column('sponsor_tx_hash', sa.String(66), nullable=True),
        sa.Column('execution_tx_hash', sa.String(66), nullable=True),
        sa.Column('gas_used', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_sponsored_transfers_idempotency_key', 'sponsored_transfers', ['idempotency_key'], unique=True
    )
    op.create_index('ix_sponsored_transfers_sponsored_tx_hash', 'sponsored_transfers', ['sponsored_tx_hash'])


def downgrade() -> None:
    op.drop_table('sponsored_transfers')
    op.drop_table('ledger_transfers')
    op.drop_table('ledger_balances')
    op.drop_table('ledger_wallets')
