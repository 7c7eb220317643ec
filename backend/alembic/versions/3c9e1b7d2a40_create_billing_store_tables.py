"""create webhook event and pending signup tables

Revision ID: 3c9e1b7d2a40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '3c9e1b7d2a40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'stripe_webhook_events',
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='processing', nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('event_id'),
        sa.CheckConstraint(
            "status IN ('processing', 'processed', 'failed')",
            name='ck_stripe_webhook_events_status_valid',
        ),
    )
    op.create_index('ix_stripe_webhook_events_expires_at', 'stripe_webhook_events', ['expires_at'])

    op.create_table(
        'pending_signups',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=False),
        sa.Column('first_name', sa.Text(), nullable=False),
        sa.Column('last_name', sa.Text(), nullable=False),
        sa.Column('password_encrypted', sa.Text(), nullable=True),
        sa.Column('plan_id', sa.String(length=255), nullable=False),
        sa.Column('plan_name', sa.Text(), nullable=True),
        sa.Column('trial_days', sa.Integer(), server_default='0', nullable=False),
        sa.Column('status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('clerk_user_id', sa.String(length=255), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('checkout_session_id', name='uq_pending_signups_checkout_session_id'),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name='ck_pending_signups_status_valid',
        ),
    )
    op.create_index('ix_pending_signups_email', 'pending_signups', ['email'])
    op.create_index('ix_pending_signups_expires_at', 'pending_signups', ['expires_at'])


def downgrade() -> None:
    op.drop_index('ix_pending_signups_expires_at', table_name='pending_signups')
    op.drop_index('ix_pending_signups_email', table_name='pending_signups')
    op.drop_table('pending_signups')
    op.drop_index('ix_stripe_webhook_events_expires_at', table_name='stripe_webhook_events')
    op.drop_table('stripe_webhook_events')
