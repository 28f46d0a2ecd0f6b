"""
Alembic migration: Create orders and the order tracking ledger.

Creates the orders table with its optimistic-concurrency version column and
the append-only order_tracking table. Tracking rows are numbered per order
and their foreign key restricts deletion of an order that has history.

Revision ID: 001
Revises:
Create Date: 2024-05-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create orders and order_tracking with their indexes and constraints."""
    op.create_table(
        'orders',
        sa.Column(
            'id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment='Unique identifier for the record',
        ),
        sa.Column(
            'status',
            sa.String(length=32),
            nullable=False,
            comment='Current order status',
        ),
        sa.Column(
            'version',
            sa.Integer(),
            nullable=False,
            comment='Optimistic concurrency token',
        ),
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was last updated',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        comment='Customer orders',
    )

    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)

    op.create_table(
        'order_tracking',
        sa.Column(
            'id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment='Unique identifier for the record',
        ),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment='Owning order identifier',
        ),
        sa.Column(
            'status',
            sa.String(length=32),
            nullable=False,
            comment='Status recorded by this entry',
        ),
        sa.Column(
            'title',
            sa.String(length=255),
            nullable=False,
            comment='Customer-facing title',
        ),
        sa.Column(
            'body',
            sa.Text(),
            nullable=False,
            comment='Customer-facing body',
        ),
        sa.Column(
            'sequence',
            sa.Integer(),
            nullable=False,
            comment='Per-order ledger position',
        ),
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            comment='Timestamp when entry was written',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_order_tracking'),
        sa.ForeignKeyConstraint(
            ['order_id'],
            ['orders.id'],
            name='fk_order_tracking_order_id',
            ondelete='RESTRICT',
        ),
        sa.UniqueConstraint(
            'order_id',
            'sequence',
            name='uq_order_tracking_order_sequence',
        ),
        comment='Append-only order status ledger',
    )

    op.create_index(
        'ix_order_tracking_order_created',
        'order_tracking',
        ['order_id', 'created_at'],
        unique=False,
    )


def downgrade() -> None:
    """Drop the tracking ledger, then orders."""
    op.drop_index('ix_order_tracking_order_created', table_name='order_tracking')
    op.drop_table('order_tracking')

    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')
