"""create_billing_tables

Revision ID: 3a91c6d2f0b7
Revises: 
Create Date: 2026-10-16 10:12:04.118203

Production-safe migration: Only creates tables that don't exist yet.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '3a91c6d2f0b7'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    """Create users, subscriptions and audit_logs tables if missing."""
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('full_name', sa.String(), nullable=True),
            sa.Column('email', sa.String(), nullable=True),
            sa.Column('stripe_customer_id', sa.String(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
        op.create_index(op.f('ix_users_stripe_customer_id'), 'users', ['stripe_customer_id'], unique=True)

    if not table_exists('subscriptions'):
        op.create_table('subscriptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('stripe_customer_id', sa.String(), nullable=True),
            sa.Column('stripe_subscription_id', sa.String(), nullable=True),
            sa.Column('stripe_price_id', sa.String(), nullable=True),
            sa.Column('plan_type', sa.String(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
            sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False),
            sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('contact_view_quota', sa.Integer(), nullable=False),
            sa.Column('contact_views_used', sa.Integer(), nullable=False),
            sa.Column('profile_boosts', sa.Integer(), nullable=False),
            sa.Column('profile_boosts_used', sa.Integer(), nullable=False),
            sa.Column('unlimited_chat', sa.Boolean(), nullable=False),
            sa.Column('featured_placement', sa.Boolean(), nullable=False),
            sa.Column('advanced_filters', sa.Boolean(), nullable=False),
            sa.Column('video_call', sa.Boolean(), nullable=False),
            sa.Column('priority_support', sa.Boolean(), nullable=False),
            sa.Column('last_payment_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('next_billing_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_subscriptions_id'), 'subscriptions', ['id'], unique=False)
        op.create_index(op.f('ix_subscriptions_user_id'), 'subscriptions', ['user_id'], unique=True)
        op.create_index(op.f('ix_subscriptions_stripe_customer_id'), 'subscriptions', ['stripe_customer_id'], unique=False)
        op.create_index(op.f('ix_subscriptions_stripe_subscription_id'), 'subscriptions', ['stripe_subscription_id'], unique=False)
        op.create_index('idx_subscription_plan_status', 'subscriptions', ['plan_type', 'status'], unique=False)
        op.create_index('idx_subscription_period_end', 'subscriptions', ['current_period_end'], unique=False)

    if not table_exists('audit_logs'):
        op.create_table('audit_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('actor_id', sa.String(), nullable=False),
            sa.Column('actor_type', sa.String(), nullable=False),
            sa.Column('action', sa.String(), nullable=False),
            sa.Column('target_type', sa.String(), nullable=False),
            sa.Column('target_id', sa.String(), nullable=False),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
        op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
        op.create_index(op.f('ix_audit_logs_created_at'), 'audit_logs', ['created_at'], unique=False)
        op.create_index('idx_audit_actor_created', 'audit_logs', ['actor_id', 'created_at'], unique=False)
        op.create_index('idx_audit_target', 'audit_logs', ['target_type', 'target_id'], unique=False)


def downgrade() -> None:
    """Drop billing tables in reverse dependency order."""
    op.drop_table('audit_logs')
    op.drop_table('subscriptions')
    op.drop_table('users')
