"""initial schema

Revision ID: 20260115_initial
Revises:
Create Date: 2026-01-15 00:00:00.000000

Creates the point-of-sale ledger from scratch:
- products: catalog with stock and optimistic version counter
- inventory_movements: append-only stock audit
- sales / sale_lines: completed sales with price snapshots
- returns / return_lines: returns linked to the sale lines they reverse
- folio_sequences: per-kind, per-day folio counters
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20260115_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products: catalog master
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_minimum', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_nonnegative'),
        sa.CheckConstraint(
            'discount_percent >= 0 AND discount_percent <= 100',
            name='ck_products_discount_range',
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_active_name', 'products', ['is_active', 'name'])

    # ============================================================================
    # inventory_movements: append-only stock audit
    # ============================================================================
    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('stock_before', sa.Integer(), nullable=False),
        sa.Column('stock_after', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('performed_by', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_movements_product_id', 'inventory_movements', ['product_id'])
    op.create_index('ix_inventory_movements_movement_type', 'inventory_movements', ['movement_type'])
    op.create_index('ix_inventory_movements_reference', 'inventory_movements', ['reference'])
    op.create_index('ix_inventory_movements_occurred_at', 'inventory_movements', ['occurred_at'])
    op.create_index('ix_inventory_movements_product_occurred', 'inventory_movements',
                    ['product_id', 'occurred_at'])

    # ============================================================================
    # sales: header, folio unique
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('folio', sa.String(length=64), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('amount_received', sa.Numeric(12, 2), nullable=True),
        sa.Column('change_due', sa.Numeric(12, 2), nullable=True),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('folio', name='uq_sales_folio'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_payment_method', 'sales', ['payment_method'])
    op.create_index('ix_sales_cashier_id', 'sales', ['cashier_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_status_created', 'sales', ['status', 'created_at'])

    # ============================================================================
    # sale_lines: price snapshot per line
    # ============================================================================
    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('line_subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_discount', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_sale_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])
    op.create_index('ix_sale_lines_sale_product', 'sale_lines', ['sale_id', 'product_id'])

    # ============================================================================
    # returns: header, return folio unique
    # ============================================================================
    op.create_table(
        'returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('folio_return', sa.String(length=64), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('refund_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('refund_method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PROCESSED'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('folio_return', name='uq_returns_folio'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_returns_sale_id', 'returns', ['sale_id'])
    op.create_index('ix_returns_processed_by', 'returns', ['processed_by'])
    op.create_index('ix_returns_status', 'returns', ['status'])
    op.create_index('ix_returns_created_at', 'returns', ['created_at'])
    op.create_index('ix_returns_sale_status', 'returns', ['sale_id', 'status'])

    # ============================================================================
    # return_lines: one row per sale line reversed
    # ============================================================================
    op.create_table(
        'return_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('sale_line_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_returned', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('condition', sa.String(length=16), nullable=False, server_default='RESALE'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity_returned > 0', name='ck_return_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['sale_line_id'], ['sale_lines.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_return_lines_return_id', 'return_lines', ['return_id'])
    op.create_index('ix_return_lines_sale_line_id', 'return_lines', ['sale_line_id'])
    op.create_index('ix_return_lines_sale_product', 'return_lines', ['sale_id', 'product_id'])

    # ============================================================================
    # folio_sequences: one counter row per (document_kind, day_key)
    # ============================================================================
    op.create_table(
        'folio_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_kind', sa.String(length=16), nullable=False),
        sa.Column('day_key', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_kind', 'day_key', name='uq_folio_sequences_kind_day'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('folio_sequences')

    op.drop_index('ix_return_lines_sale_product', table_name='return_lines')
    op.drop_index('ix_return_lines_sale_line_id', table_name='return_lines')
    op.drop_index('ix_return_lines_return_id', table_name='return_lines')
    op.drop_table('return_lines')

    op.drop_index('ix_returns_sale_status', table_name='returns')
    op.drop_index('ix_returns_created_at', table_name='returns')
    op.drop_index('ix_returns_status', table_name='returns')
    op.drop_index('ix_returns_processed_by', table_name='returns')
    op.drop_index('ix_returns_sale_id', table_name='returns')
    op.drop_table('returns')

    op.drop_index('ix_sale_lines_sale_product', table_name='sale_lines')
    op.drop_index('ix_sale_lines_sale_id', table_name='sale_lines')
    op.drop_table('sale_lines')

    op.drop_index('ix_sales_status_created', table_name='sales')
    op.drop_index('ix_sales_status', table_name='sales')
    op.drop_index('ix_sales_cashier_id', table_name='sales')
    op.drop_index('ix_sales_payment_method', table_name='sales')
    op.drop_table('sales')

    op.drop_index('ix_inventory_movements_product_occurred', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_occurred_at', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_reference', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_movement_type', table_name='inventory_movements')
    op.drop_index('ix_inventory_movements_product_id', table_name='inventory_movements')
    op.drop_table('inventory_movements')

    op.drop_index('ix_products_active_name', table_name='products')
    op.drop_table('products')
