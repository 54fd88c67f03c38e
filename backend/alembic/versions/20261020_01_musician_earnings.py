"""musician_earnings

Revision ID: 20261020_01
Revises: 20261019_01
Create Date: 2026-10-20 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '20261020_01'
down_revision: Union[str, None] = '20261019_01'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'musician_wallets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('musician_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('pending_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('available_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('pending_withdrawals', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_withdrawn', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('last_withdrawal_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_musician_wallets_musician_id', 'musician_wallets', ['musician_id'], unique=True)

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_id', sa.Integer(), sa.ForeignKey('musician_wallets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('musician_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('withdrawal_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('reference', sa.String(), nullable=False),
        sa.Column('bank_name', sa.String(), nullable=True),
        sa.Column('account_number', sa.String(20), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_withdrawals_wallet_id', 'withdrawals', ['wallet_id'])
    op.create_index('ix_withdrawals_musician_id', 'withdrawals', ['musician_id'])
    op.create_index('ix_withdrawals_reference', 'withdrawals', ['reference'], unique=True)


def downgrade() -> None:
    op.drop_table('withdrawals')
    op.drop_table('musician_wallets')
