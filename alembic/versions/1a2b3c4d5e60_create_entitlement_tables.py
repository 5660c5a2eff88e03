"""create entitlement tables

Revision ID: 1a2b3c4d5e60
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '1a2b3c4d5e60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create teams, subscriptions, billing events and quota usage tables."""

    op.create_table(
        'teams',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('slug', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_teams_slug'), 'teams', ['slug'], unique=True)
    op.create_index(op.f('ix_teams_stripe_customer_id'), 'teams', ['stripe_customer_id'], unique=True)

    op.create_table(
        'team_subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.String(length=64), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(length=255), nullable=False),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_product_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('tier', sa.String(length=32), nullable=False),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_team_subscriptions_id'), 'team_subscriptions', ['id'], unique=False)
    op.create_index(op.f('ix_team_subscriptions_team_id'), 'team_subscriptions', ['team_id'], unique=False)
    op.create_index(op.f('ix_team_subscriptions_stripe_subscription_id'), 'team_subscriptions', ['stripe_subscription_id'], unique=True)
    op.create_index(op.f('ix_team_subscriptions_stripe_customer_id'), 'team_subscriptions', ['stripe_customer_id'], unique=False)
    op.create_index(op.f('ix_team_subscriptions_status'), 'team_subscriptions', ['status'], unique=False)

    # Append-only webhook log; provider_event_id gives replay protection
    op.create_table(
        'billing_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.String(length=64), nullable=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=128), nullable=False),
        sa.Column('provider_event_id', sa.String(length=255), nullable=False),
        sa.Column('payload_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_billing_events_id'), 'billing_events', ['id'], unique=False)
    op.create_index(op.f('ix_billing_events_team_id'), 'billing_events', ['team_id'], unique=False)
    op.create_index(op.f('ix_billing_events_event_type'), 'billing_events', ['event_type'], unique=False)
    op.create_index(op.f('ix_billing_events_provider_event_id'), 'billing_events', ['provider_event_id'], unique=True)
    op.create_index(op.f('ix_billing_events_created_at'), 'billing_events', ['created_at'], unique=False)

    op.create_table(
        'tenant_quota_usage',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('team_id', sa.String(length=64), nullable=False),
        sa.Column('quota_type', sa.String(length=32), nullable=False),
        sa.Column('used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('period_start', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('reset_at', sa.DateTime(), nullable=True),  # NULL for non-resetting quotas
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['team_id'], ['teams.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('team_id', 'quota_type', name='uq_tenant_quota_usage_team_quota')
    )
    op.create_index(op.f('ix_tenant_quota_usage_id'), 'tenant_quota_usage', ['id'], unique=False)
    op.create_index(op.f('ix_tenant_quota_usage_team_id'), 'tenant_quota_usage', ['team_id'], unique=False)
    op.create_index(op.f('ix_tenant_quota_usage_reset_at'), 'tenant_quota_usage', ['reset_at'], unique=False)


def downgrade() -> None:
    """Drop entitlement tables."""

    op.drop_index(op.f('ix_tenant_quota_usage_reset_at'), table_name='tenant_quota_usage')
    op.drop_index(op.f('ix_tenant_quota_usage_team_id'), table_name='tenant_quota_usage')
    op.drop_index(op.f('ix_tenant_quota_usage_id'), table_name='tenant_quota_usage')
    op.drop_table('tenant_quota_usage')

    op.drop_index(op.f('ix_billing_events_created_at'), table_name='billing_events')
    op.drop_index(op.f('ix_billing_events_provider_event_id'), table_name='billing_events')
    op.drop_index(op.f('ix_billing_events_event_type'), table_name='billing_events')
    op.drop_index(op.f('ix_billing_events_team_id'), table_name='billing_events')
    op.drop_index(op.f('ix_billing_events_id'), table_name='billing_events')
    op.drop_table('billing_events')

    op.drop_index(op.f('ix_team_subscriptions_status'), table_name='team_subscriptions')
    op.drop_index(op.f('ix_team_subscriptions_stripe_customer_id'), table_name='team_subscriptions')
    op.drop_index(op.f('ix_team_subscriptions_stripe_subscription_id'), table_name='team_subscriptions')
    op.drop_index(op.f('ix_team_subscriptions_team_id'), table_name='team_subscriptions')
    op.drop_index(op.f('ix_team_subscriptions_id'), table_name='team_subscriptions')
    op.drop_table('team_subscriptions')

    op.drop_index(op.f('ix_teams_stripe_customer_id'), table_name='teams')
    op.drop_index(op.f('ix_teams_slug'), table_name='teams')
    op.drop_table('teams')
