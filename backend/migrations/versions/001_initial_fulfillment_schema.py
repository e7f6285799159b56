"""
Alembic migration: Initial order fulfillment schema.

Creates profiles, stock (products, raw materials, bill of materials), orders
with items and status history, riders and deliveries, material allocations
and sales invoices. Status columns use PostgreSQL enum types holding the
display labels.

Revision ID: 001
Revises:
Create Date: 2024-01-01 00:00:00.000000
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


ENUM_TYPES = {
    'user_role': (
        'admin',
        'order_manager',
        'sales_staff',
        'sales_manager',
        'delivery_manager',
        'rider',
        'customer',
    ),
    'order_status': (
        'Quoted',
        'Pending',
        'Confirmed',
        'Paid',
        'On Delivery',
        'Completed',
        'Cancelled',
    ),
    'delivery_status': ('Assigned', 'In Transit', 'Delivered', 'Failed'),
    'rider_status': ('Available', 'Not Available'),
    'invoice_status': ('Unpaid', 'Paid'),
    'allocation_status': ('Allocated', 'Released', 'Consumed'),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
    ]


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('updated_by', sa.String(255), nullable=True),
    ]


def upgrade() -> None:
    """
    Create the fulfillment schema.

    Uniqueness of deliveries.order_id and sales_invoices.order_id keeps an
    order to at most one delivery and one invoice; stock counters carry
    non-negative check constraints.
    """
    bind = op.get_bind()
    for name, values in ENUM_TYPES.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', _enum('user_role'), nullable=False, server_default='customer'),
        *_timestamp_columns(),
        comment='Role assignment per identity provider user',
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])

    op.create_table(
        'products',
        _id_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        *_timestamp_columns(),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
    )

    op.create_table(
        'raw_materials',
        _id_column(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('unit', sa.String(20), nullable=True),
        sa.Column('stock', sa.Numeric(14, 3), nullable=False, server_default='0'),
        *_timestamp_columns(),
        sa.CheckConstraint('stock >= 0', name='ck_raw_materials_stock_non_negative'),
    )

    op.create_table(
        'product_bom',
        _id_column(),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'raw_material_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('raw_materials.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('quantity_per_unit', sa.Numeric(14, 4), nullable=False),
        *_timestamp_columns(),
        sa.UniqueConstraint('product_id', 'raw_material_id', name='uq_product_bom_pair'),
        sa.CheckConstraint('quantity_per_unit > 0', name='ck_product_bom_quantity_positive'),
    )

    op.create_table(
        'orders',
        _id_column(),
        sa.Column('order_number', sa.String(50), nullable=False, unique=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', _enum('order_status'), nullable=False, server_default='Pending'),
        sa.Column('delivery_status', _enum('delivery_status'), nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=True),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('shipping_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('shipping_address', postgresql.JSONB(), nullable=True),
        sa.Column('billing_address', postgresql.JSONB(), nullable=True),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('delivery_method', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approved_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamp_columns(),
        *_audit_columns(),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_amount_non_negative'),
        sa.CheckConstraint('tax_amount >= 0', name='ck_orders_tax_amount_non_negative'),
        sa.CheckConstraint(
            'shipping_amount >= 0',
            name='ck_orders_shipping_amount_non_negative',
        ),
        comment='Customer orders',
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_items',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'product_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        *_timestamp_columns(),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.CheckConstraint('unit_price >= 0', name='ck_order_items_unit_price_non_negative'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_status_history',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('old_status', _enum('order_status'), nullable=True),
        sa.Column('new_status', _enum('order_status'), nullable=False),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.String(500), nullable=True),
        *_timestamp_columns(),
        comment='Order status change history for audit trail',
    )
    op.create_index(
        'ix_order_status_history_order_created',
        'order_status_history',
        ['order_id', 'created_at'],
    )

    op.create_table(
        'riders',
        _id_column(),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('cellphone_number', sa.String(50), nullable=True),
        sa.Column(
            'status',
            _enum('rider_status'),
            nullable=False,
            server_default='Available',
        ),
        *_timestamp_columns(),
    )
    op.create_index('ix_riders_status', 'riders', ['status'])

    op.create_table(
        'deliveries',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='RESTRICT'),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            'rider_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('riders.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column(
            'status',
            _enum('delivery_status'),
            nullable=False,
            server_default='Assigned',
        ),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('order_number', sa.String(50), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=True),
        *_timestamp_columns(),
        *_audit_columns(),
        sa.CheckConstraint('quantity > 0', name='ck_deliveries_quantity_positive'),
        comment='Order delivery assignments',
    )
    op.create_index('ix_deliveries_rider_id', 'deliveries', ['rider_id'])
    op.create_index('ix_deliveries_rider_status', 'deliveries', ['rider_id', 'status'])

    op.create_table(
        'material_allocations',
        _id_column(),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column(
            'raw_material_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('raw_materials.id', ondelete='RESTRICT'),
            nullable=False,
        ),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column(
            'status',
            _enum('allocation_status'),
            nullable=False,
            server_default='Allocated',
        ),
        *_timestamp_columns(),
        sa.CheckConstraint('quantity > 0', name='ck_material_allocations_quantity_positive'),
    )
    op.create_index(
        'ix_material_allocations_order_status',
        'material_allocations',
        ['order_id', 'status'],
    )

    op.create_table(
        'sales_invoices',
        _id_column(),
        sa.Column('invoice_number', sa.String(50), nullable=False, unique=True),
        sa.Column(
            'order_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('orders.id', ondelete='RESTRICT'),
            nullable=False,
            unique=True,
        ),
        sa.Column('order_number', sa.String(50), nullable=True),
        sa.Column(
            'status',
            _enum('invoice_status'),
            nullable=False,
            server_default='Unpaid',
        ),
        sa.Column('customer_name', sa.String(255), nullable=True),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('shipping_address', postgresql.JSONB(), nullable=True),
        sa.Column('billing_address', postgresql.JSONB(), nullable=True),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('delivery_method', sa.String(50), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('shipping_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column(
            'invoice_date',
            sa.DateTime(timezone=True),
            server_default=sa.text('now()'),
            nullable=False,
        ),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamp_columns(),
    )

    op.create_table(
        'sales_invoice_items',
        _id_column(),
        sa.Column(
            'sales_invoice_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('sales_invoices.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('product_description', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        *_timestamp_columns(),
    )
    op.create_index(
        'ix_sales_invoice_items_sales_invoice_id',
        'sales_invoice_items',
        ['sales_invoice_id'],
    )


def downgrade() -> None:
    """Drop the fulfillment schema in reverse dependency order."""
    op.drop_table('sales_invoice_items')
    op.drop_table('sales_invoices')
    op.drop_table('material_allocations')
    op.drop_table('deliveries')
    op.drop_table('riders')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('product_bom')
    op.drop_table('raw_materials')
    op.drop_table('products')
    op.drop_table('profiles')

    bind = op.get_bind()
    for name in reversed(list(ENUM_TYPES)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
