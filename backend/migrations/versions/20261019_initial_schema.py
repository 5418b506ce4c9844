"""Initial schema: parties, sessions, inventory buckets, receipts, distributions, invoices

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. Shops, retailers and the retailer -> shop network
2. Users and bearer session tokens
3. Products, inventory buckets and lots, stock movements
4. Stock receipts
5. Shop distributions and the retailer ledger
6. Gift cards, invoices and the payment ledger
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
    # 1. PARTIES
    # ==========================================================================
    op.create_table('shops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('contact_number', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shops', schema=None) as batch_op:
        batch_op.create_index('ix_shops_code', ['code'], unique=True)
        batch_op.create_index('ix_shops_is_active', ['is_active'], unique=False)

    op.create_table('retailers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('retailers', schema=None) as batch_op:
        batch_op.create_index('ix_retailers_code', ['code'], unique=True)
        batch_op.create_index('ix_retailers_is_active', ['is_active'], unique=False)

    op.create_table('retailer_shops',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('retailer_id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('partnership_type', sa.String(length=32), nullable=True),
        sa.Column('payment_terms', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('retailer_id', 'shop_id', name='uq_retailer_shops_retailer_shop'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('retailer_shops', schema=None) as batch_op:
        batch_op.create_index('ix_retailer_shops_retailer_id', ['retailer_id'], unique=False)
        batch_op.create_index('ix_retailer_shops_shop_id', ['shop_id'], unique=False)

    # ==========================================================================
    # 2. USERS & SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('retailer_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('(shop_id IS NOT NULL) OR (retailer_id IS NOT NULL)', name='ck_users_has_party'),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_username', ['username'], unique=True)
        batch_op.create_index('ix_users_role', ['role'], unique=False)
        batch_op.create_index('ix_users_shop_id', ['shop_id'], unique=False)
        batch_op.create_index('ix_users_retailer_id', ['retailer_id'], unique=False)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('retailer_id', sa.Integer(), nullable=True),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens', schema=None) as batch_op:
        batch_op.create_index('ix_session_tokens_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_session_tokens_token_hash', ['token_hash'], unique=True)
        batch_op.create_index('ix_session_tokens_expires_at', ['expires_at'], unique=False)
        batch_op.create_index('ix_session_tokens_is_revoked', ['is_revoked'], unique=False)
        batch_op.create_index('ix_session_tokens_user_active', ['user_id', 'is_revoked'], unique=False)

    # ==========================================================================
    # 3. PRODUCTS & INVENTORY
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_name', ['name'], unique=False)

    op.create_table('inventory_buckets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_type', sa.String(length=16), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('total_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('available_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('allocated_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wholesale_price_cents', sa.Integer(), nullable=True),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('available_stock >= 0', name='ck_inventory_buckets_available_nonneg'),
        sa.CheckConstraint('allocated_stock >= 0', name='ck_inventory_buckets_allocated_nonneg'),
        sa.CheckConstraint('available_stock + allocated_stock = total_stock', name='ck_inventory_buckets_balanced'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_type', 'owner_id', 'product_id', name='uq_inventory_buckets_owner_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_buckets', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_buckets_product_id', ['product_id'], unique=False)

    op.create_table('inventory_lots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bucket_id', sa.Integer(), nullable=False),
        sa.Column('owner_type', sa.String(length=16), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('in_transit_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('warehouse_location', sa.String(length=128), nullable=True),
        sa.Column('last_purchase_price_cents', sa.Integer(), nullable=True),
        sa.Column('last_purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('current_stock >= 0', name='ck_inventory_lots_current_nonneg'),
        sa.CheckConstraint('reserved_stock >= 0', name='ck_inventory_lots_reserved_nonneg'),
        sa.CheckConstraint('in_transit_stock >= 0', name='ck_inventory_lots_in_transit_nonneg'),
        sa.ForeignKeyConstraint(['bucket_id'], ['inventory_buckets.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('bucket_id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_lots', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_lots_product_id', ['product_id'], unique=False)

    # ==========================================================================
    # 4. STOCK RECEIPTS
    # ==========================================================================
    op.create_table('stock_receipts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('received_quantity', sa.Integer(), nullable=False),
        sa.Column('verified_quantity', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('supplier_name', sa.String(length=255), nullable=True),
        sa.Column('delivery_note', sa.String(length=255), nullable=True),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('expiry_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=True),
        sa.Column('submitted_by_user_id', sa.Integer(), nullable=False),
        sa.Column('verified_by_user_id', sa.Integer(), nullable=True),
        sa.Column('discrepancy_reason', sa.String(length=255), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['submitted_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['verified_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_receipts', schema=None) as batch_op:
        batch_op.create_index('ix_stock_receipts_shop_id', ['shop_id'], unique=False)
        batch_op.create_index('ix_stock_receipts_status', ['status'], unique=False)
        batch_op.create_index('ix_stock_receipts_shop_status', ['shop_id', 'status'], unique=False)

    # ==========================================================================
    # 5. DISTRIBUTIONS & RETAILER LEDGER
    # ==========================================================================
    op.create_table('shop_distributions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('retailer_id', sa.Integer(), nullable=False),
        sa.Column('retailer_shop_id', sa.Integer(), nullable=False),
        sa.Column('retailer_product_id', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('delivery_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('tracking_number', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('distribution_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('delivery_expected_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivery_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity > 0', name='ck_shop_distributions_quantity_positive'),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.ForeignKeyConstraint(['retailer_shop_id'], ['retailer_shops.id'], ),
        sa.ForeignKeyConstraint(['retailer_product_id'], ['inventory_buckets.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shop_distributions', schema=None) as batch_op:
        batch_op.create_index('ix_shop_distributions_retailer_id', ['retailer_id'], unique=False)
        batch_op.create_index('ix_shop_distributions_retailer_shop_id', ['retailer_shop_id'], unique=False)
        batch_op.create_index('ix_shop_distributions_retailer_product_id', ['retailer_product_id'], unique=False)
        batch_op.create_index('ix_shop_distributions_reference', ['reference'], unique=False)
        batch_op.create_index('ix_shop_distributions_delivery_status', ['delivery_status'], unique=False)
        batch_op.create_index('ix_shop_distributions_payment_status', ['payment_status'], unique=False)
        batch_op.create_index('ix_shop_distributions_retailer_status', ['retailer_id', 'delivery_status'], unique=False)

    op.create_table('retailer_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('retailer_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('shop_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['retailer_id'], ['retailers.id'], ),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('retailer_transactions', schema=None) as batch_op:
        batch_op.create_index('ix_retailer_transactions_retailer_id', ['retailer_id'], unique=False)
        batch_op.create_index('ix_retailer_transactions_type', ['type'], unique=False)
        batch_op.create_index('ix_retailer_transactions_shop_id', ['shop_id'], unique=False)
        batch_op.create_index('ix_retailer_transactions_reference', ['reference'], unique=False)
        batch_op.create_index('ix_retailer_txns_retailer_created', ['retailer_id', 'created_at'], unique=False)

    # ==========================================================================
    # 6. STOCK MOVEMENTS (after receipts and distributions, which it references)
    # ==========================================================================
    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bucket_id', sa.Integer(), nullable=False),
        sa.Column('owner_type', sa.String(length=16), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('stock_field', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('previous_qty', sa.Integer(), nullable=False),
        sa.Column('new_qty', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('stock_receipt_id', sa.Integer(), nullable=True),
        sa.Column('distribution_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['bucket_id'], ['inventory_buckets.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['stock_receipt_id'], ['stock_receipts.id'], ),
        sa.ForeignKeyConstraint(['distribution_id'], ['shop_distributions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_bucket_id', ['bucket_id'], unique=False)
        batch_op.create_index('ix_stock_movements_type', ['type'], unique=False)
        batch_op.create_index('ix_stock_movements_stock_receipt_id', ['stock_receipt_id'], unique=False)
        batch_op.create_index('ix_stock_movements_distribution_id', ['distribution_id'], unique=False)
        batch_op.create_index('ix_stock_movements_created_at', ['created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_owner_product', ['owner_type', 'owner_id', 'product_id'], unique=False)

    # ==========================================================================
    # 7. GIFT CARDS, INVOICES & PAYMENT LEDGER
    # ==========================================================================
    op.create_table('gift_cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('issued_by_shop_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('balance_cents >= 0', name='ck_gift_cards_balance_nonneg'),
        sa.ForeignKeyConstraint(['issued_by_shop_id'], ['shops.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('gift_cards', schema=None) as batch_op:
        batch_op.create_index('ix_gift_cards_code', ['code'], unique=True)

    op.create_table('invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('total_amount_cents > 0', name='ck_invoices_total_positive'),
        sa.ForeignKeyConstraint(['shop_id'], ['shops.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.create_index('ix_invoices_shop_id', ['shop_id'], unique=False)
        batch_op.create_index('ix_invoices_status', ['status'], unique=False)
        batch_op.create_index('ix_invoices_shop_status', ['shop_id', 'status'], unique=False)

    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('gift_card_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('amount_cents > 0', name='ck_transactions_amount_positive'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['gift_card_id'], ['gift_cards.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index('ix_transactions_invoice_id', ['invoice_id'], unique=False)
        batch_op.create_index('ix_transactions_payment_method', ['payment_method'], unique=False)
        batch_op.create_index('ix_transactions_gift_card_id', ['gift_card_id'], unique=False)
        batch_op.create_index('ix_transactions_invoice_created', ['invoice_id', 'created_at'], unique=False)


def downgrade():
    # Drop tables in reverse order of creation (respect foreign keys)
    op.drop_table('transactions')
    op.drop_table('invoices')
    op.drop_table('gift_cards')
    op.drop_table('stock_movements')
    op.drop_table('retailer_transactions')
    op.drop_table('shop_distributions')
    op.drop_table('stock_receipts')
    op.drop_table('inventory_lots')
    op.drop_table('inventory_buckets')
    op.drop_table('products')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('retailer_shops')
    op.drop_table('retailers')
    op.drop_table('shops')
