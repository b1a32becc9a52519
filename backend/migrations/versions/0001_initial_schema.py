"""initial salesdesk schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete SalesDesk schema:
- accounts, users, session_tokens: identity and bearer-token sessions
- products: dual-unit stock counters (boxes + grams)
- sales: recorded sales, soft-deleted through an approved proposal
- sale_audits: change proposals, at most one pending per sale
- stock_movements: append-only log of every stock counter change
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """
    Create all tables from scratch.

    WHY: Stock never goes negative and a sale never has two pending
    proposals even if a code path skips the service checks, so both rules
    are also enforced here (CHECK constraints and a partial unique index).
    """

    # ============================================================================
    # accounts / users / session_tokens
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='worker'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_account_id', 'users', ['account_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_account_id', 'session_tokens', ['account_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)

    # ============================================================================
    # products: authoritative stock counters
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('stock_boxes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_grams', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('box_to_kg_ratio', sa.Numeric(precision=10, scale=3), nullable=False, server_default='20'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('box_price_cents', sa.Integer(), nullable=True),
        sa.Column('kg_price_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id', 'sku', name='uq_products_account_sku'),
        sa.CheckConstraint('stock_boxes >= 0', name='ck_products_stock_boxes_non_negative'),
        sa.CheckConstraint('stock_grams >= 0', name='ck_products_stock_grams_non_negative'),
        sa.CheckConstraint('box_to_kg_ratio > 0', name='ck_products_ratio_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_account_id', 'products', ['account_id'])
    op.create_index('ix_products_account_name', 'products', ['account_id', 'name'])

    # ============================================================================
    # sales
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('boxes_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kg_grams', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('box_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('kg_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('client_name', sa.String(length=100), nullable=True),
        sa.Column('client_email', sa.String(length=150), nullable=True),
        sa.Column('client_phone', sa.String(length=20), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by_user_id', sa.Integer(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['deleted_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('boxes_quantity >= 0', name='ck_sales_boxes_non_negative'),
        sa.CheckConstraint('kg_grams >= 0', name='ck_sales_grams_non_negative'),
        sa.CheckConstraint('boxes_quantity > 0 OR kg_grams > 0', name='ck_sales_has_quantity'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_account_id', 'sales', ['account_id'])
    op.create_index('ix_sales_product_id', 'sales', ['product_id'])
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'])
    op.create_index('ix_sales_payment_method', 'sales', ['payment_method'])
    op.create_index('ix_sales_client_name', 'sales', ['client_name'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_account_status_created', 'sales', ['account_id', 'status', 'created_at'])

    # ============================================================================
    # sale_audits: change proposals
    # ============================================================================
    op.create_table(
        'sale_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('audit_type', sa.String(length=32), nullable=False),
        sa.Column('boxes_change', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('grams_change', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('old_values', sa.JSON(), nullable=False),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=False),
        sa.Column('approval_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('decision_reason', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_audits_account_id', 'sale_audits', ['account_id'])
    op.create_index('ix_sale_audits_sale_id', 'sale_audits', ['sale_id'])
    op.create_index('ix_sale_audits_audit_type', 'sale_audits', ['audit_type'])
    op.create_index('ix_sale_audits_performed_by_user_id', 'sale_audits', ['performed_by_user_id'])
    op.create_index('ix_sale_audits_approval_status', 'sale_audits', ['approval_status'])
    op.create_index('ix_sale_audits_approved_by_user_id', 'sale_audits', ['approved_by_user_id'])
    op.create_index('ix_sale_audits_created_at', 'sale_audits', ['created_at'])
    op.create_index(
        'ix_sale_audits_account_status_created', 'sale_audits',
        ['account_id', 'approval_status', 'created_at'],
    )
    # At most one pending proposal per sale
    op.create_index(
        'uq_sale_audits_one_pending', 'sale_audits', ['sale_id'],
        unique=True,
        sqlite_where=sa.text("approval_status = 'pending'"),
        postgresql_where=sa.text("approval_status = 'pending'"),
    )

    # ============================================================================
    # stock_movements: append-only stock log
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('boxes_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('grams_delta', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('audit_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('performed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['audit_id'], ['sale_audits.id'], ),
        sa.ForeignKeyConstraint(['performed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_account_id', 'stock_movements', ['account_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_movement_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_sale_id', 'stock_movements', ['sale_id'])
    op.create_index('ix_stock_movements_audit_id', 'stock_movements', ['audit_id'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])


def downgrade():
    op.drop_table('stock_movements')
    op.drop_index('uq_sale_audits_one_pending', table_name='sale_audits')
    op.drop_table('sale_audits')
    op.drop_table('sales')
    op.drop_table('products')
    op.drop_table('session_tokens')
    op.drop_table('users')
    op.drop_table('accounts')
