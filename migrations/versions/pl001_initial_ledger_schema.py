"""initial ledger schema

Revision ID: pl001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the multi-tenant ledger schema:
- tenants: tenant registry
- products: catalogue with on-hand quantity and weighted average cost
- stock_movements: append-only stock ledger
- stock_opnames: physical counts awaiting reconciliation
- purchase_orders / purchase_order_items
- sale_transactions / sale_transaction_items
- expense_categories / cash_transactions: cash ledger
- returns / return_items
- document_sequences: per-tenant, per-day document counters
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'pl001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # tenants
    # ============================================================================
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    # ============================================================================
    # products: quantity and cost are only written by the stock ledger
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('cost', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_track_stock', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_products_tenant_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_tenant_name', 'products', ['tenant_id', 'name'])
    op.create_index('ix_products_tenant_active', 'products', ['tenant_id', 'is_active'])

    # ============================================================================
    # stock_movements: append-only
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('cost_per_unit', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('before_qty', sa.Integer(), nullable=False),
        sa.Column('after_qty', sa.Integer(), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_tenant_id', 'stock_movements', ['tenant_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_tenant_created', 'stock_movements', ['tenant_id', 'created_at'])
    op.create_index('ix_stock_movements_product_type_created', 'stock_movements',
                    ['product_id', 'movement_type', 'created_at'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference_type', 'reference_id'])

    # ============================================================================
    # stock_opnames
    # ============================================================================
    op.create_table(
        'stock_opnames',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('system_qty', sa.Integer(), nullable=False),
        sa.Column('actual_qty', sa.Integer(), nullable=False),
        sa.Column('difference', sa.Integer(), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed_by', sa.Integer(), nullable=True),
        sa.Column('stock_movement_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['stock_movement_id'], ['stock_movements.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_opnames_tenant_id', 'stock_opnames', ['tenant_id'])
    op.create_index('ix_stock_opnames_product_id', 'stock_opnames', ['product_id'])
    op.create_index('ix_stock_opnames_tenant_processed', 'stock_opnames', ['tenant_id', 'processed'])

    # ============================================================================
    # purchase_orders / purchase_order_items
    # ============================================================================
    op.create_table(
        'purchase_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('po_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_name', sa.String(length=255), nullable=False),
        sa.Column('po_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('total_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'po_number', name='uq_purchase_orders_tenant_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_orders_tenant_id', 'purchase_orders', ['tenant_id'])
    op.create_index('ix_purchase_orders_status', 'purchase_orders', ['status'])
    op.create_index('ix_purchase_orders_tenant_status', 'purchase_orders', ['tenant_id', 'status'])

    op.create_table(
        'purchase_order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('cost_per_unit', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('stock_movement_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['purchase_order_id'], ['purchase_orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['stock_movement_id'], ['stock_movements.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_order_items_purchase_order_id', 'purchase_order_items', ['purchase_order_id'])
    op.create_index('ix_purchase_order_items_product_id', 'purchase_order_items', ['product_id'])

    # ============================================================================
    # sale_transactions / sale_transaction_items
    # ============================================================================
    op.create_table(
        'sale_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=32), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('payment_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('change_amount', sa.Numeric(precision=15, scale=2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'transaction_number', name='uq_sale_transactions_tenant_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_transactions_tenant_id', 'sale_transactions', ['tenant_id'])
    op.create_index('ix_sale_transactions_status', 'sale_transactions', ['status'])
    op.create_index('ix_sale_transactions_tenant_status_completed', 'sale_transactions',
                    ['tenant_id', 'status', 'completed_at'])
    op.create_index('ix_sale_transactions_tenant_cashier', 'sale_transactions', ['tenant_id', 'cashier_id'])

    op.create_table(
        'sale_transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_transaction_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['sale_transaction_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_transaction_id', 'line_number', name='uq_sale_items_line'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_transaction_items_sale_transaction_id', 'sale_transaction_items',
                    ['sale_transaction_id'])
    op.create_index('ix_sale_transaction_items_product_id', 'sale_transaction_items', ['product_id'])

    # ============================================================================
    # expense_categories / cash_transactions
    # ============================================================================
    op.create_table(
        'expense_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),  # NULL = shared by all tenants
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_expense_categories_tenant_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expense_categories_tenant_id', 'expense_categories', ['tenant_id'])

    op.create_table(
        'cash_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('category_type', sa.String(length=16), nullable=True),
        sa.Column('sale_transaction_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('receipt_image_url', sa.String(length=512), nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('is_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verified_by', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['expense_categories.id'], ),
        sa.ForeignKeyConstraint(['sale_transaction_id'], ['sale_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'transaction_number', name='uq_cash_transactions_tenant_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_transactions_tenant_id', 'cash_transactions', ['tenant_id'])
    op.create_index('ix_cash_transactions_category_id', 'cash_transactions', ['category_id'])
    op.create_index('ix_cash_transactions_sale_transaction_id', 'cash_transactions', ['sale_transaction_id'])
    op.create_index('ix_cash_transactions_tenant_date', 'cash_transactions', ['tenant_id', 'transaction_date'])
    op.create_index('ix_cash_transactions_tenant_type', 'cash_transactions', ['tenant_id', 'transaction_type'])

    # ============================================================================
    # returns / return_items
    # ============================================================================
    op.create_table(
        'returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('return_number', sa.Integer(), nullable=False),
        sa.Column('sequence_date', sa.Date(), nullable=False),
        sa.Column('sale_transaction_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=True),
        sa.Column('return_total', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('refund_amount', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0'),
        sa.Column('refund_method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cash_transaction_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['sale_transaction_id'], ['sale_transactions.id'], ),
        sa.ForeignKeyConstraint(['cash_transaction_id'], ['cash_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sequence_date', 'return_number', name='uq_returns_tenant_day_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_returns_tenant_id', 'returns', ['tenant_id'])
    op.create_index('ix_returns_sale_transaction_id', 'returns', ['sale_transaction_id'])
    op.create_index('ix_returns_tenant_created', 'returns', ['tenant_id', 'created_at'])

    op.create_table(
        'return_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('sale_item_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id'], ),
        sa.ForeignKeyConstraint(['sale_item_id'], ['sale_transaction_items.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_return_items_return_id', 'return_items', ['return_id'])
    op.create_index('ix_return_items_sale_item_id', 'return_items', ['sale_item_id'])
    op.create_index('ix_return_items_product_id', 'return_items', ['product_id'])

    # ============================================================================
    # document_sequences: one counter row per tenant, kind and day
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('sequence_kind', sa.String(length=32), nullable=False),
        sa.Column('sequence_date', sa.Date(), nullable=False),
        sa.Column('current_value', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sequence_kind', 'sequence_date',
                            name='uq_document_sequences_tenant_kind_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_tenant_id', 'document_sequences', ['tenant_id'])


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('return_items')
    op.drop_table('returns')
    op.drop_table('cash_transactions')
    op.drop_table('expense_categories')
    op.drop_table('sale_transaction_items')
    op.drop_table('sale_transactions')
    op.drop_table('purchase_order_items')
    op.drop_table('purchase_orders')
    op.drop_table('stock_opnames')
    op.drop_table('stock_movements')
    op.drop_table('products')
    op.drop_table('tenants')
