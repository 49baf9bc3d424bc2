"""Baseline migration - profiles, tickets, messages

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Profiles mirror the identity provider. Tickets and their append-only
message log are the conversation store.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create conversation tables."""

    # ==========================================================================
    # Profiles
    # ==========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(320), nullable=True, unique=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='customer'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # ==========================================================================
    # Tickets
    # ==========================================================================
    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'customer_id',
            sa.Uuid(),
            sa.ForeignKey('profiles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('subject', sa.Text(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='open'),
        sa.Column('priority', sa.String(16), nullable=False, server_default='medium'),
        sa.Column('sentiment', sa.String(16), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_tickets_customer_updated', 'tickets', ['customer_id', 'updated_at'])
    op.create_index('idx_tickets_status', 'tickets', ['status'])

    # ==========================================================================
    # Messages (append-only)
    # ==========================================================================
    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'ticket_id',
            sa.Uuid(),
            sa.ForeignKey('tickets.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'sender_id',
            sa.Uuid(),
            sa.ForeignKey('profiles.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('content', sa.Text(), nullable=False, server_default=''),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('is_internal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('idx_messages_ticket_created', 'messages', ['ticket_id', 'created_at', 'id'])


def downgrade() -> None:
    op.drop_index('idx_messages_ticket_created', table_name='messages')
    op.drop_table('messages')
    op.drop_index('idx_tickets_status', table_name='tickets')
    op.drop_index('idx_tickets_customer_updated', table_name='tickets')
    op.drop_table('tickets')
    op.drop_table('profiles')
