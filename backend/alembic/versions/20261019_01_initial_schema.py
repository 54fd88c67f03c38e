"""initial_schema

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '20261019_01'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def _flaggable():
    return [
        sa.Column('is_flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('flag_reason', sa.Text(), nullable=True),
        sa.Column('flagged_at', sa.DateTime(), nullable=True),
        sa.Column('flagged_by', sa.String(64), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('role', sa.String(32), nullable=False, server_default='client'),
        sa.Column('country_code', sa.String(2), nullable=True),
        sa.Column('kyc_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_support', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('suspended_at', sa.DateTime(), nullable=True),
        sa.Column('suspended_by', sa.String(64), nullable=True),
        sa.Column('suspension_reason', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_user_profiles_id', 'user_profiles', ['id'])
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'], unique=True)

    op.create_table(
        'events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_date', sa.DateTime(), nullable=True),
        sa.Column('location', sa.String(), nullable=True),
        sa.Column('budget', sa.Numeric(12, 2), nullable=True),
        *_flaggable(),
        *_timestamps(),
    )
    op.create_index('ix_events_client_id', 'events', ['client_id'])

    op.create_table(
        'musician_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('musician_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('event_date', sa.DateTime(), nullable=True),
        sa.Column('venue', sa.String(), nullable=True),
        sa.Column('ticket_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        *_flaggable(),
        *_timestamps(),
    )
    op.create_index('ix_musician_events_musician_id', 'musician_events', ['musician_id'])

    op.create_table(
        'ticket_purchases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'musician_event_id',
            sa.Integer(),
            sa.ForeignKey('musician_events.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('buyer_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('payment_status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('ticket_code', sa.String(), nullable=True, unique=True),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('refunded_by', sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_ticket_purchases_musician_event_id', 'ticket_purchases', ['musician_event_id'])
    op.create_index('ix_ticket_purchases_buyer_id', 'ticket_purchases', ['buyer_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('musician_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('event_id', sa.Integer(), sa.ForeignKey('events.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(32), nullable=False, server_default='unpaid'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('event_type', sa.String(), nullable=True),
        sa.Column('event_date', sa.DateTime(), nullable=False),
        sa.Column('event_location', sa.String(), nullable=True),
        sa.Column('event_latitude', sa.Float(), nullable=True),
        sa.Column('event_longitude', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.String(32), nullable=True),
        sa.Column('payment_reference', sa.String(), nullable=True, unique=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('marked_complete_at', sa.DateTime(), nullable=True),
        sa.Column('marked_complete_by', sa.String(64), nullable=True),
        sa.Column('funds_released_at', sa.DateTime(), nullable=True),
        sa.Column('tracking_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.String(64), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancellation_category', sa.String(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_bookings_client_id', 'bookings', ['client_id'])
    op.create_index('ix_bookings_musician_id', 'bookings', ['musician_id'])
    # Auto-release scan: completed, unreleased, oldest completion first
    op.create_index('ix_bookings_release_scan', 'bookings', ['status', 'funds_released_at', 'marked_complete_at'])

    op.create_table(
        'escrow_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('musician_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('gross_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('vat', sa.Numeric(12, 2), nullable=False),
        sa.Column('net_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        sa.Column('status', sa.String(32), nullable=False, server_default='held'),
        sa.Column('held_at', sa.DateTime(), nullable=False),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.Column('released_by', sa.String(64), nullable=True),
        sa.Column('release_type', sa.String(32), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_escrow_transactions_booking_id', 'escrow_transactions', ['booking_id'], unique=True)
    op.create_index('ix_escrow_transactions_client_id', 'escrow_transactions', ['client_id'])
    op.create_index('ix_escrow_transactions_musician_id', 'escrow_transactions', ['musician_id'])

    op.create_table(
        'client_wallets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_funded', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('pending_payments', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='NGN'),
        *_timestamps(),
    )
    op.create_index('ix_client_wallets_client_id', 'client_wallets', ['client_id'], unique=True)

    op.create_table(
        'client_wallet_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('wallet_id', sa.Integer(), sa.ForeignKey('client_wallets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('client_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('reference', sa.String(), nullable=False),
        sa.Column('provider', sa.String(), nullable=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='SET NULL'), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_client_wallet_transactions_wallet_id', 'client_wallet_transactions', ['wallet_id'])
    op.create_index('ix_client_wallet_transactions_client_id', 'client_wallet_transactions', ['client_id'])
    op.create_index(
        'ix_client_wallet_transactions_reference', 'client_wallet_transactions', ['reference'], unique=True
    )

    op.create_table(
        'live_locations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('latitude', sa.Float(), nullable=False),
        sa.Column('longitude', sa.Float(), nullable=False),
        sa.Column('accuracy', sa.Float(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('booking_id', 'user_id', name='uq_live_locations_booking_user'),
    )
    op.create_index('ix_live_locations_booking_id', 'live_locations', ['booking_id'])

    op.create_table(
        'user_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reporter_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('reported_user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending'),
        sa.Column('reviewed_by', sa.String(64), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_user_reports_reporter_id', 'user_reports', ['reporter_id'])
    op.create_index('ix_user_reports_reported_user_id', 'user_reports', ['reported_user_id'])

    op.create_table(
        'admin_actions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('admin_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('action_type', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=False),
        sa.Column('target_id', sa.String(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('at', sa.DateTime(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_admin_actions_admin_id', 'admin_actions', ['admin_id'])
    op.create_index('ix_admin_actions_action_type', 'admin_actions', ['action_type'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('email_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sms_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('whatsapp_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('push_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('in_app_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_address', sa.String(), nullable=True),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('whatsapp_number', sa.String(), nullable=True),
        sa.Column('booking_notifications', sa.JSON(), nullable=True),
        sa.Column('message_notifications', sa.JSON(), nullable=True),
        sa.Column('payment_notifications', sa.JSON(), nullable=True),
        sa.Column('job_notifications', sa.JSON(), nullable=True),
        sa.Column('marketing_notifications', sa.JSON(), nullable=True),
        sa.Column('quiet_hours_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('quiet_hours_start', sa.Time(), nullable=True),
        sa.Column('quiet_hours_end', sa.Time(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_notification_preferences_user_id', 'notification_preferences', ['user_id'], unique=True)

    op.create_table(
        'posts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('media_url', sa.String(), nullable=True),
        sa.Column('media_type', sa.String(), nullable=False, server_default='text'),
        sa.Column('thumbnail_url', sa.String(), nullable=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_posts_user_id', 'posts', ['user_id'])

    op.create_table(
        'post_likes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('post_id', 'user_id', name='uq_post_likes_post_user'),
    )
    op.create_index('ix_post_likes_post_id', 'post_likes', ['post_id'])

    op.create_table(
        'post_comments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('post_id', sa.Integer(), sa.ForeignKey('posts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(64), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_post_comments_post_id', 'post_comments', ['post_id'])


def downgrade() -> None:
    for table in (
        'post_comments',
        'post_likes',
        'posts',
        'notification_preferences',
        'notifications',
        'admin_actions',
        'user_reports',
        'live_locations',
        'client_wallet_transactions',
        'client_wallets',
        'escrow_transactions',
        'bookings',
        'ticket_purchases',
        'musician_events',
        'events',
        'user_profiles',
    ):
        op.drop_table(table)
