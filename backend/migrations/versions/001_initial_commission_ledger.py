"""Initial commission ledger schema

Revision ID: 001
Revises: 
Create Date: 2026-10-12 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'projects',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('creator_stripe_account_id', sa.String(length=255), nullable=True),
        sa.Column('refund_window_days', sa.Integer(), nullable=True),
        sa.Column('platform_commission_percent', sa.Numeric(6, 4), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_projects_user_id', 'projects', ['user_id'])
    op.create_index('ix_projects_creator_stripe_account_id', 'projects', ['creator_stripe_account_id'], unique=True)

    op.create_table(
        'contracts',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('project_id', sa.String(length=36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('commission_percent', sa.Numeric(6, 4), nullable=False),
        sa.Column('refund_window_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('project_id', 'user_id', name='uq_contracts_project_user'),
    )
    op.create_index('ix_contracts_project_id', 'contracts', ['project_id'])
    op.create_index('ix_contracts_user_id', 'contracts', ['user_id'])

    op.create_table(
        'coupon_templates',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('project_id', sa.String(length=36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('percent_off', sa.Integer(), nullable=False),
        sa.Column('stripe_coupon_id', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('allowed_marketer_ids', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_coupon_templates_project_id', 'coupon_templates', ['project_id'])

    op.create_table(
        'coupons',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('project_id', sa.String(length=36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('template_id', sa.String(length=36), sa.ForeignKey('coupon_templates.id', ondelete='SET NULL'), nullable=True),
        sa.Column('marketer_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('code', sa.String(length=100), nullable=False),
        sa.Column('stripe_coupon_id', sa.String(length=255), nullable=False),
        sa.Column('stripe_promotion_code_id', sa.String(length=255), nullable=False),
        sa.Column('percent_off', sa.Integer(), nullable=False),
        sa.Column('commission_percent', sa.Numeric(6, 4), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_coupons_project_id', 'coupons', ['project_id'])
    op.create_index('ix_coupons_template_id', 'coupons', ['template_id'])
    op.create_index('ix_coupons_marketer_id', 'coupons', ['marketer_id'])
    op.create_index('ix_coupons_stripe_promotion_code_id', 'coupons', ['stripe_promotion_code_id'], unique=True)
    op.create_index('ix_coupons_template_marketer_status', 'coupons', ['template_id', 'marketer_id', 'status'])

    op.create_table(
        'creator_payments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('creator_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('amount_total', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('stripe_checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_creator_payments_creator_id', 'creator_payments', ['creator_id'])
    op.create_index('ix_creator_payments_stripe_checkout_session_id', 'creator_payments', ['stripe_checkout_session_id'])

    op.create_table(
        'purchases',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('stripe_charge_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_invoice_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('project_id', sa.String(length=36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('coupon_id', sa.String(length=36), sa.ForeignKey('coupons.id', ondelete='SET NULL'), nullable=True),
        sa.Column('marketer_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('creator_payment_id', sa.String(length=36), sa.ForeignKey('creator_payments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('commission_amount', sa.Integer(), nullable=False),
        sa.Column('commission_amount_original', sa.Integer(), nullable=False),
        sa.Column('refunded_amount', sa.Integer(), nullable=False),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_refund_ids', sa.JSON(), nullable=True),
        sa.Column('refunds_tracked_by_charge', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('refund_window_days', sa.Integer(), nullable=False),
        sa.Column('refund_eligible_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('dispute_id', sa.String(length=255), nullable=True),
        sa.Column('dispute_status', sa.String(length=50), nullable=True),
        sa.Column('chargeback_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('commission_status', sa.String(length=40), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_purchases_stripe_event_id', 'purchases', ['stripe_event_id'], unique=True)
    op.create_index('ix_purchases_stripe_charge_id', 'purchases', ['stripe_charge_id'])
    op.create_index('ix_purchases_stripe_invoice_id', 'purchases', ['stripe_invoice_id'])
    op.create_index('ix_purchases_stripe_payment_intent_id', 'purchases', ['stripe_payment_intent_id'])
    op.create_index('ix_purchases_project_id', 'purchases', ['project_id'])
    op.create_index('ix_purchases_coupon_id', 'purchases', ['coupon_id'])
    op.create_index('ix_purchases_marketer_id', 'purchases', ['marketer_id'])
    op.create_index('ix_purchases_creator_payment_id', 'purchases', ['creator_payment_id'])
    op.create_index('ix_purchases_refund_eligible_at', 'purchases', ['refund_eligible_at'])
    op.create_index('ix_purchases_dispute_id', 'purchases', ['dispute_id'])
    op.create_index('ix_purchases_commission_status', 'purchases', ['commission_status'])
    op.create_index('ix_purchases_project_charge', 'purchases', ['project_id', 'stripe_charge_id'])
    op.create_index('ix_purchases_commission_status_eligible', 'purchases', ['commission_status', 'refund_eligible_at'])

    op.create_table(
        'commission_adjustments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('creator_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('marketer_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('project_id', sa.String(length=36), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('purchase_id', sa.String(length=36), sa.ForeignKey('purchases.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=10), nullable=False),
        sa.Column('reason', sa.String(length=40), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_commission_adjustments_creator_id', 'commission_adjustments', ['creator_id'])
    op.create_index('ix_commission_adjustments_marketer_id', 'commission_adjustments', ['marketer_id'])
    op.create_index('ix_commission_adjustments_project_id', 'commission_adjustments', ['project_id'])
    op.create_index('ix_commission_adjustments_purchase_id', 'commission_adjustments', ['purchase_id'])
    op.create_index('ix_commission_adjustments_created_at', 'commission_adjustments', ['created_at'])
    op.create_index('ix_commission_adjustments_purchase_reason', 'commission_adjustments', ['purchase_id', 'reason'])

    op.create_table(
        'events',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('type', sa.String(length=100), nullable=False),
        sa.Column('actor_id', sa.String(length=36), nullable=True),
        sa.Column('project_id', sa.String(length=36), nullable=True),
        sa.Column('subject_type', sa.String(length=100), nullable=False),
        sa.Column('subject_id', sa.String(length=36), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_events_type', 'events', ['type'])
    op.create_index('ix_events_project_id', 'events', ['project_id'])
    op.create_index('ix_events_created_at', 'events', ['created_at'])
    op.create_index('ix_events_subject', 'events', ['subject_type', 'subject_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('user_id', sa.String(length=36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_user_created', 'notifications', ['user_id', 'created_at'])

    op.create_table(
        'stripe_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_stripe_events_id', 'stripe_events', ['id'])
    op.create_index('ix_stripe_events_stripe_event_id', 'stripe_events', ['stripe_event_id'], unique=True)
    op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])


def downgrade() -> None:
    for table in (
        'stripe_events', 'notifications', 'events', 'commission_adjustments', 'purchases',
        'creator_payments', 'coupons', 'coupon_templates', 'contracts', 'projects', 'users',
    ):
        op.drop_table(table)
