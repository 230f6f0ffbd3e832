"""initial ledger schema

Revision ID: cl0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete credit ledger schema:
- items / item_stock: catalog with per-branch stock pools
- buyers / buyer_payments: credit customers and their settlements
- transactions / sale_lines: POS sales and manual bills
- suppliers / supplier_ledger_entries: payables with signed ledger
- cheques, expenses
- audit_logs, whatsapp_logs: append-only trails
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'cl0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # items / item_stock
    # ============================================================================
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('wholesale_price_cents', sa.Integer(), nullable=False),
        sa.Column('retail_price_cents', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_items_category_name', 'items', ['category', 'name'])

    op.create_table(
        'item_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_id', 'branch', name='uq_item_stock_item_branch'),
        sa.CheckConstraint('quantity >= 0', name='ck_item_stock_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_item_stock_item_id', 'item_stock', ['item_id'])
    op.create_index('ix_item_stock_branch', 'item_stock', ['branch'])

    # ============================================================================
    # buyers / buyer_payments
    # ============================================================================
    op.create_table(
        'buyers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('display_code', sa.String(length=32), nullable=True),
        sa.Column('shop_name', sa.String(length=255), nullable=False),
        sa.Column('contact_name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('whatsapp_number', sa.String(length=32), nullable=True),
        sa.Column('credit_limit_cents', sa.Integer(), nullable=False),
        sa.Column('current_credit_cents', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('display_code', name='uq_buyers_display_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_buyers_shop_name', 'buyers', ['shop_name'])

    op.create_table(
        'buyer_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('receipt_image', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['buyer_id'], ['buyers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_buyer_payments_buyer_id', 'buyer_payments', ['buyer_id'])
    op.create_index('ix_buyer_payments_branch', 'buyer_payments', ['branch'])
    op.create_index('ix_buyer_payments_occurred_at', 'buyer_payments', ['occurred_at'])
    op.create_index('ix_buyer_payments_buyer_occurred', 'buyer_payments', ['buyer_id', 'occurred_at'])

    # ============================================================================
    # transactions / sale_lines
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('is_manual', sa.Boolean(), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('bill_image_url', sa.Text(), nullable=True),
        sa.Column('is_flagged', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_branch', 'transactions', ['branch'])
    op.create_index('ix_transactions_occurred_at', 'transactions', ['occurred_at'])
    op.create_index('ix_transactions_buyer_id', 'transactions', ['buyer_id'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_buyer_status', 'transactions', ['buyer_id', 'status'])
    op.create_index('ix_transactions_branch_occurred', 'transactions', ['branch', 'occurred_at'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['item_id'], ['items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_lines_transaction_id', 'sale_lines', ['transaction_id'])
    op.create_index('ix_sale_lines_item_id', 'sale_lines', ['item_id'])

    # ============================================================================
    # suppliers / supplier_ledger_entries
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_name', sa.String(length=255), nullable=False),
        sa.Column('contact_name', sa.String(length=255), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('whatsapp_number', sa.String(length=32), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('balance_cents', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_suppliers_category_name', 'suppliers', ['category', 'shop_name'])

    op.create_table(
        'supplier_ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_supplier_ledger_entries_supplier_id', 'supplier_ledger_entries', ['supplier_id'])
    op.create_index('ix_supplier_ledger_entries_branch', 'supplier_ledger_entries', ['branch'])
    op.create_index('ix_supplier_ledger_entries_occurred_at', 'supplier_ledger_entries', ['occurred_at'])
    op.create_index('ix_supplier_ledger_supplier_occurred', 'supplier_ledger_entries', ['supplier_id', 'occurred_at'])

    # ============================================================================
    # cheques / expenses
    # ============================================================================
    op.create_table(
        'cheques',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('cheque_number', sa.String(length=64), nullable=False),
        sa.Column('bank', sa.String(length=128), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cheques_branch', 'cheques', ['branch'])
    op.create_index('ix_cheques_status', 'cheques', ['status'])
    op.create_index('ix_cheques_reference_id', 'cheques', ['reference_id'])
    op.create_index('ix_cheques_status_due', 'cheques', ['status', 'due_date'])

    op.create_table(
        'expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('proof_image_url', sa.Text(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expenses_branch', 'expenses', ['branch'])
    op.create_index('ix_expenses_occurred_at', 'expenses', ['occurred_at'])
    op.create_index('ix_expenses_branch_occurred', 'expenses', ['branch', 'occurred_at'])

    # ============================================================================
    # audit_logs / whatsapp_logs (append-only)
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('user_role', sa.String(length=32), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('action', sa.String(length=128), nullable=False),
        sa.Column('target', sa.String(length=255), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_branch', 'audit_logs', ['branch'])
    op.create_index('ix_audit_logs_occurred_at', 'audit_logs', ['occurred_at'])
    op.create_index('ix_audit_logs_severity_occurred', 'audit_logs', ['severity', 'occurred_at'])

    op.create_table(
        'whatsapp_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recipient_name', sa.String(length=255), nullable=False),
        sa.Column('recipient_phone', sa.String(length=32), nullable=False),
        sa.Column('message_type', sa.String(length=32), nullable=False),
        sa.Column('branch', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_whatsapp_logs_occurred_at', 'whatsapp_logs', ['occurred_at'])


def downgrade():
    for table in (
        'whatsapp_logs', 'audit_logs', 'expenses', 'cheques',
        'supplier_ledger_entries', 'suppliers', 'sale_lines', 'transactions',
        'buyer_payments', 'buyers', 'item_stock', 'items',
    ):
        op.drop_table(table)
