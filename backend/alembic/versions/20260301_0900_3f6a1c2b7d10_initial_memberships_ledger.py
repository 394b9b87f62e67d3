"""Initial schema: members, plans, subscriptions, history, payments, receipt counters

Revision ID: 3f6a1c2b7d10
Revises: 
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f6a1c2b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

member_type = sa.Enum('trial', 'full', 'collaboration', name='membertype')
member_status = sa.Enum('active', 'inactive', 'suspended', 'pending', name='memberstatus')
subscription_status = sa.Enum('active', 'paused', 'pending', 'cancelled', 'expired', name='subscriptionstatus')
payment_method = sa.Enum('cash', 'card', 'bank_transfer', 'online', 'check', name='paymentmethod')
payment_status = sa.Enum('completed', 'refund', name='paymentstatus')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    ]


def upgrade() -> None:
    """Create the membership ledger tables."""
    # 1. Members (no dependencies)
    op.create_table(
        'members',
        *_timestamps(),
        sa.Column('first_name', sa.String(), nullable=False),
        sa.Column('last_name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('member_type', member_type, nullable=False, server_default='trial'),
        sa.Column('status', member_status, nullable=False, server_default='pending'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_members_email'), 'members', ['email'])
    op.create_index(op.f('ix_members_member_type'), 'members', ['member_type'])

    # 2. Plans (no dependencies, read only for the ledger)
    op.create_table(
        'subscription_plans',
        *_timestamps(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Integer(), nullable=False),
        sa.Column('sessions_count', sa.Integer(), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=True),
        sa.Column('signup_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_collaboration_plan', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint('price >= 0', name='ck_subscription_plans_price_non_negative'),
        sa.CheckConstraint('sessions_count >= 0', name='ck_subscription_plans_sessions_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_plans_is_active'), 'subscription_plans', ['is_active'])

    # 3. Subscriptions (depends on members, plans)
    op.create_table(
        'member_subscriptions',
        *_timestamps(),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('plan_id', sa.Uuid(), nullable=True),
        sa.Column('plan_name_snapshot', sa.String(), nullable=False),
        sa.Column('total_sessions_snapshot', sa.Integer(), nullable=False),
        sa.Column('total_amount_snapshot', sa.Integer(), nullable=False),
        sa.Column('duration_days_snapshot', sa.Integer(), nullable=False),
        sa.Column('status', subscription_status, nullable=False, server_default='active'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('pause_start_date', sa.Date(), nullable=True),
        sa.Column('pause_end_date', sa.Date(), nullable=True),
        sa.Column('pause_reason', sa.String(length=200), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('upgraded_to_id', sa.Uuid(), nullable=True),
        sa.Column('used_sessions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('signup_fee_paid', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('used_sessions >= 0', name='ck_member_subscriptions_used_sessions_non_negative'),
        sa.CheckConstraint('paid_amount >= 0', name='ck_member_subscriptions_paid_amount_non_negative'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['plan_id'], ['subscription_plans.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['upgraded_to_id'], ['member_subscriptions.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_member_subscriptions_member_id'), 'member_subscriptions', ['member_id'])
    op.create_index(op.f('ix_member_subscriptions_plan_id'), 'member_subscriptions', ['plan_id'])
    op.create_index(op.f('ix_member_subscriptions_status'), 'member_subscriptions', ['status'])
    op.create_index(op.f('ix_member_subscriptions_end_date'), 'member_subscriptions', ['end_date'])
    # Active subscription lookup per member
    op.create_index(
        'ix_member_subscriptions_member_status',
        'member_subscriptions',
        ['member_id', 'status', 'created_at'],
    )

    # 4. Subscription history (depends on subscriptions)
    op.create_table(
        'subscription_history',
        *_timestamps(),
        sa.Column('subscription_id', sa.Uuid(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('old_value', sa.String(), nullable=True),
        sa.Column('new_value', sa.String(), nullable=True),
        sa.Column('reason', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['subscription_id'], ['member_subscriptions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_subscription_history_subscription_id'), 'subscription_history', ['subscription_id'])

    # 5. Payments and refunds (depends on subscriptions, members)
    op.create_table(
        'subscription_payments',
        *_timestamps(),
        sa.Column('subscription_id', sa.Uuid(), nullable=False),
        sa.Column('member_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('payment_status', payment_status, nullable=False, server_default='completed'),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('receipt_number', sa.String(length=50), nullable=False),
        sa.Column('refunded_payment_id', sa.Uuid(), nullable=True),
        sa.Column('refund_reason', sa.String(length=200), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_subscription_payments_amount_positive'),
        sa.ForeignKeyConstraint(['subscription_id'], ['member_subscriptions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['refunded_payment_id'], ['subscription_payments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number', name='uq_subscription_payments_receipt_number')
    )
    op.create_index(op.f('ix_subscription_payments_subscription_id'), 'subscription_payments', ['subscription_id'])
    op.create_index(op.f('ix_subscription_payments_member_id'), 'subscription_payments', ['member_id'])
    op.create_index(op.f('ix_subscription_payments_payment_status'), 'subscription_payments', ['payment_status'])
    op.create_index(op.f('ix_subscription_payments_payment_date'), 'subscription_payments', ['payment_date'])
    op.create_index(
        op.f('ix_subscription_payments_refunded_payment_id'), 'subscription_payments', ['refunded_payment_id']
    )

    # 6. Receipt counters, one row per year
    op.create_table(
        'receipt_counters',
        sa.Column('year', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('last_value', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('year')
    )


def downgrade() -> None:
    """Drop all tables."""
    # Drop tables in reverse dependency order
    op.drop_table('receipt_counters')
    op.drop_table('subscription_payments')
    op.drop_table('subscription_history')
    op.drop_table('member_subscriptions')
    op.drop_table('subscription_plans')
    op.drop_table('members')

    bind = op.get_bind()
    for enum_type in (payment_status, payment_method, subscription_status, member_status, member_type):
        enum_type.drop(bind, checkfirst=True)
