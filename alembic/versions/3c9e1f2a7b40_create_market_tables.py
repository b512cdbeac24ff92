"""create_market_tables

Revision ID: 3c9e1f2a7b40
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c9e1f2a7b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUS = sa.Enum(
    'pending', 'pending_payment', 'processing', 'shipped', 'delivered',
    'cancelled', 'refunded',
    name='market_order_status_enum',
)
MOVEMENT_TYPE = sa.Enum(
    'reservation', 'release', name='market_inventory_movement_type_enum'
)
PAYMENT_METHOD = sa.Enum(
    'card', 'mobile_money', 'bank_transfer', 'cash_on_pickup',
    name='market_payment_method_enum',
)
PAYMENT_STATUS = sa.Enum(
    'pending', 'completed', 'failed', 'refunded', name='market_payment_status_enum'
)


def upgrade() -> None:
    """Upgrade schema - Add marketplace order, inventory and payment tables."""

    op.create_table(
        'market_vendors',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'market_parts',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock', sa.Integer(), server_default='0', nullable=False),
        sa.Column('vendor_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('stock >= 0', name='market_parts_non_negative_stock'),
        sa.CheckConstraint('price >= 0', name='market_parts_non_negative_price'),
        sa.ForeignKeyConstraint(['vendor_id'], ['market_vendors.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_parts_vendor_id', 'market_parts', ['vendor_id'])

    op.create_table(
        'market_inventory_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('part_id', sa.Uuid(), nullable=False),
        sa.Column('movement_type', MOVEMENT_TYPE, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['part_id'], ['market_parts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_inventory_movements_part_id', 'market_inventory_movements', ['part_id'])
    op.create_index('ix_market_inventory_movements_order_id', 'market_inventory_movements', ['order_id'])

    op.create_table(
        'market_orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('status', ORDER_STATUS, server_default='pending', nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_orders_user_id', 'market_orders', ['user_id'])
    op.create_index('ix_market_orders_user_id_created_at', 'market_orders', ['user_id', 'created_at'])

    op.create_table(
        'market_order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('part_id', sa.Uuid(), nullable=False),
        sa.Column('vendor_id', sa.Uuid(), nullable=False),
        sa.Column('part_title', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity > 0', name='market_order_items_positive_quantity'),
        sa.ForeignKeyConstraint(['order_id'], ['market_orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['part_id'], ['market_parts.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_order_items_order_id', 'market_order_items', ['order_id'])

    op.create_table(
        'market_payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('method', PAYMENT_METHOD, nullable=False),
        sa.Column('status', PAYMENT_STATUS, nullable=False),
        sa.Column('transaction_ref', sa.String(length=128), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['market_orders.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_market_payments_order_id', 'market_payments', ['order_id'])
    op.create_index('ix_market_payments_transaction_ref', 'market_payments', ['transaction_ref'])


def downgrade() -> None:
    """Downgrade schema - Drop marketplace tables."""
    op.drop_table('market_payments')
    op.drop_table('market_order_items')
    op.drop_table('market_orders')
    op.drop_table('market_inventory_movements')
    op.drop_table('market_parts')
    op.drop_table('market_vendors')

    bind = op.get_bind()
    for enum_type in (PAYMENT_STATUS, PAYMENT_METHOD, ORDER_STATUS, MOVEMENT_TYPE):
        enum_type.drop(bind, checkfirst=True)
