"""Initial stock schema: products, stock ledger, sales, sale audits

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. products (box + loose-kg stock, version counter)
2. stock_movements (append-only ledger)
3. sales (quantities sold, applied stock deltas, price snapshots)
4. sale_audits (pending change proposals)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('supplier', sa.String(length=200), nullable=True),
        sa.Column('boxes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('loose_kg', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('box_to_kg_ratio', sa.Numeric(precision=10, scale=3), nullable=False),
        sa.Column('unit_cost_per_box', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('unit_cost_per_kg', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('unit_price_per_box', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('unit_price_per_kg', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('boxes >= 0', name='ck_products_boxes_non_negative'),
        sa.CheckConstraint('loose_kg >= 0', name='ck_products_loose_kg_non_negative'),
        sa.CheckConstraint('box_to_kg_ratio > 0', name='ck_products_ratio_positive'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_name', ['name'], unique=False)

    # ==========================================================================
    # 2. STOCK LEDGER
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('box_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kg_delta', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('audit_id', sa.Integer(), nullable=True),
        sa.Column('performed_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint(
            "movement_type IN ('addition', 'damage', 'correction', 'sale', 'reversal')",
            name='ck_stock_movements_type',
        ),
        sa.CheckConstraint('box_delta != 0 OR kg_delta != 0', name='ck_stock_movements_nonzero'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_movements_movement_type', ['movement_type'], unique=False)
        batch_op.create_index('ix_stock_movements_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_stock_movements_audit_id', ['audit_id'], unique=False)
        batch_op.create_index('ix_stock_movements_product_created', ['product_id', 'created_at'], unique=False)

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('boxes_sold', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kg_sold', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('stock_box_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_kg_delta', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('box_unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('kg_unit_price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('client_name', sa.String(length=200), nullable=True),
        sa.Column('client_email', sa.String(length=150), nullable=True),
        sa.Column('client_phone', sa.String(length=20), nullable=True),
        sa.Column('performed_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('boxes_sold >= 0', name='ck_sales_boxes_non_negative'),
        sa.CheckConstraint('kg_sold >= 0', name='ck_sales_kg_non_negative'),
        sa.CheckConstraint('boxes_sold > 0 OR kg_sold > 0', name='ck_sales_quantity_present'),
        sa.CheckConstraint("payment_status IN ('paid', 'pending', 'partial')", name='ck_sales_payment_status'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_sales_payment_status', ['payment_status'], unique=False)
        batch_op.create_index('ix_sales_client_name', ['client_name'], unique=False)
        batch_op.create_index('ix_sales_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_sales_product_created', ['product_id', 'created_at'], unique=False)

    # ==========================================================================
    # 4. SALE AUDITS
    # ==========================================================================
    op.create_table('sale_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=32), nullable=False),
        sa.Column('boxes_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kg_delta', sa.Numeric(precision=12, scale=3), nullable=False, server_default='0'),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('requested_by', sa.String(length=64), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=False),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('approval_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('approved_by', sa.String(length=64), nullable=True),
        sa.Column('approval_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint(
            "change_type IN ('quantity_change', 'payment_update', 'deletion')",
            name='ck_sale_audits_change_type',
        ),
        sa.CheckConstraint(
            "approval_status IN ('pending', 'approved', 'rejected')",
            name='ck_sale_audits_approval_status',
        ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_audits', schema=None) as batch_op:
        batch_op.create_index('ix_sale_audits_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_audits_change_type', ['change_type'], unique=False)
        batch_op.create_index('ix_sale_audits_requested_by', ['requested_by'], unique=False)
        batch_op.create_index('ix_sale_audits_approval_status', ['approval_status'], unique=False)
        batch_op.create_index('ix_sale_audits_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_sale_audits_sale_status', ['sale_id', 'approval_status'], unique=False)


def downgrade():
    with op.batch_alter_table('sale_audits', schema=None) as batch_op:
        batch_op.drop_index('ix_sale_audits_sale_status')
        batch_op.drop_index('ix_sale_audits_created_at')
        batch_op.drop_index('ix_sale_audits_approval_status')
        batch_op.drop_index('ix_sale_audits_requested_by')
        batch_op.drop_index('ix_sale_audits_change_type')
        batch_op.drop_index('ix_sale_audits_sale_id')
    op.drop_table('sale_audits')

    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.drop_index('ix_sales_product_created')
        batch_op.drop_index('ix_sales_created_at')
        batch_op.drop_index('ix_sales_client_name')
        batch_op.drop_index('ix_sales_payment_status')
        batch_op.drop_index('ix_sales_product_id')
    op.drop_table('sales')

    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.drop_index('ix_stock_movements_product_created')
        batch_op.drop_index('ix_stock_movements_audit_id')
        batch_op.drop_index('ix_stock_movements_sale_id')
        batch_op.drop_index('ix_stock_movements_movement_type')
        batch_op.drop_index('ix_stock_movements_product_id')
    op.drop_table('stock_movements')

    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_index('ix_products_name')
    op.drop_table('products')
