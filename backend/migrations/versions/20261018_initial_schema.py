"""Inventory & transaction consistency core: initial schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration adds:
1. stocks + stock_adjustments (per-branch quantities and their append-only log)
2. transactions, transaction_items, price_discrepancies
3. stock_transfers
4. returns, return_items, refunds
5. document_sequences (INV-/TRF-/RET- numbering)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. STOCK
    # ==========================================================================
    op.create_table('stocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('initial_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'variant_id', 'branch_id', name='uq_stocks_tenant_variant_branch'),
        sa.CheckConstraint('quantity >= 0', name='ck_stocks_quantity_non_negative'),
        sa.CheckConstraint('min_stock >= 0', name='ck_stocks_min_stock_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stocks_tenant_id', 'stocks', ['tenant_id'])
    op.create_index('ix_stocks_variant_id', 'stocks', ['variant_id'])
    op.create_index('ix_stocks_branch_id', 'stocks', ['branch_id'])
    op.create_index('ix_stocks_tenant_branch', 'stocks', ['tenant_id', 'branch_id'])

    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('stock_id', sa.Integer(), nullable=True),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('reference_type', sa.String(length=32), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['stock_id'], ['stocks.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_adjustments_tenant_id', 'stock_adjustments', ['tenant_id'])
    op.create_index('ix_stock_adjustments_stock_id', 'stock_adjustments', ['stock_id'])
    op.create_index('ix_stock_adjustments_reason', 'stock_adjustments', ['reason'])
    op.create_index('ix_stock_adj_key_created', 'stock_adjustments',
                    ['tenant_id', 'variant_id', 'branch_id', 'created_at'])
    op.create_index('ix_stock_adj_reference', 'stock_adjustments', ['reference_type', 'reference_id'])

    # ==========================================================================
    # 2. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('cashier_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_amount_cents', sa.Integer(), nullable=False),
        sa.Column('is_split_payment', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('payment_method2', sa.String(length=16), nullable=True),
        sa.Column('payment_amount2_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'transaction_number', name='uq_transactions_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transactions_tenant_id', 'transactions', ['tenant_id'])
    op.create_index('ix_transactions_branch_id', 'transactions', ['branch_id'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_tenant_branch_created', 'transactions',
                    ['tenant_id', 'branch_id', 'created_at'])

    op.create_table('transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_transaction_items_quantity_positive'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_transaction_items_price_non_negative'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_variant_id', 'transaction_items', ['variant_id'])

    op.create_table('price_discrepancies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('catalog_price_cents', sa.Integer(), nullable=False),
        sa.Column('sold_price_cents', sa.Integer(), nullable=False),
        sa.Column('difference_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_price_discrepancies_transaction_id', 'price_discrepancies', ['transaction_id'])
    op.create_index('ix_price_discrepancies_variant_id', 'price_discrepancies', ['variant_id'])

    # ==========================================================================
    # 3. TRANSFERS
    # ==========================================================================
    op.create_table('stock_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('transfer_number', sa.String(length=64), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('from_branch_id', sa.Integer(), nullable=False),
        sa.Column('to_branch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.Integer(), nullable=True),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'transfer_number', name='uq_stock_transfers_tenant_number'),
        sa.CheckConstraint('from_branch_id <> to_branch_id', name='ck_stock_transfers_distinct_branches'),
        sa.CheckConstraint('quantity > 0', name='ck_stock_transfers_quantity_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_transfers_tenant_id', 'stock_transfers', ['tenant_id'])
    op.create_index('ix_stock_transfers_variant_id', 'stock_transfers', ['variant_id'])
    op.create_index('ix_stock_transfers_from_branch_id', 'stock_transfers', ['from_branch_id'])
    op.create_index('ix_stock_transfers_to_branch_id', 'stock_transfers', ['to_branch_id'])
    op.create_index('ix_stock_transfers_status', 'stock_transfers', ['status'])
    op.create_index('ix_stock_transfers_tenant_status', 'stock_transfers', ['tenant_id', 'status'])

    # ==========================================================================
    # 4. RETURNS
    # ==========================================================================
    op.create_table('returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('return_number', sa.String(length=64), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('refund_method', sa.String(length=16), nullable=False),
        sa.Column('refund_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requested_by', sa.Integer(), nullable=True),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'return_number', name='uq_returns_tenant_number'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_returns_tenant_id', 'returns', ['tenant_id'])
    op.create_index('ix_returns_transaction_id', 'returns', ['transaction_id'])
    op.create_index('ix_returns_branch_id', 'returns', ['branch_id'])
    op.create_index('ix_returns_status', 'returns', ['status'])
    op.create_index('ix_returns_tenant_status', 'returns', ['tenant_id', 'status'])

    op.create_table('return_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_return_items_quantity_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_return_items_return_id', 'return_items', ['return_id'])
    op.create_index('ix_return_items_variant_id', 'return_items', ['variant_id'])

    op.create_table('refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('return_id', name='uq_refunds_return'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_refunds_tenant_id', 'refunds', ['tenant_id'])

    # ==========================================================================
    # 5. DOCUMENT SEQUENCES
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('day', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'document_type', 'day', name='uq_document_sequences_tenant_type_day'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_document_sequences_tenant_id', 'document_sequences', ['tenant_id'])


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('refunds')
    op.drop_table('return_items')
    op.drop_table('returns')
    op.drop_table('stock_transfers')
    op.drop_table('price_discrepancies')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('stock_adjustments')
    op.drop_table('stocks')
