"""Initial ledger schema: catalog, invoices, stock ledger, numbering buckets

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration creates:
1. parts, suppliers, customers (soft-deleted catalog)
2. invoices and invoice_items
3. inventory_transactions (append-only IN/OUT stock ledger)
4. invoice_number_buckets (per type + month numbering lock rows)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _soft_delete():
    return [
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def _party_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('gstin', sa.String(length=15), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
    ]


def upgrade():
    # ==========================================================================
    # 1. CATALOG
    # ==========================================================================
    op.create_table('parts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('part_number', sa.String(length=64), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('hsn_code', sa.String(length=32), nullable=False),
        sa.Column('gst_percent', sa.Numeric(5, 2), nullable=False, server_default='18'),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='Nos'),
        sa.Column('mrp', sa.Numeric(14, 2), nullable=True),
        sa.Column('rtl', sa.Numeric(14, 2), nullable=True),
        sa.Column('barcode', sa.String(length=128), nullable=True),
        sa.Column('qr_code', sa.String(length=255), nullable=True),
        *_soft_delete(),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('part_number'),
        sa.UniqueConstraint('barcode'),
        sa.UniqueConstraint('qr_code'),
    )
    op.create_index('ix_parts_item_name', 'parts', ['item_name'])
    op.create_index('ix_parts_is_deleted', 'parts', ['is_deleted'])

    op.create_table('suppliers',
        *_party_columns(),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        *_soft_delete(),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_suppliers_is_deleted', 'suppliers', ['is_deleted'])

    op.create_table('customers',
        *_party_columns(),
        *_soft_delete(),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_is_deleted', 'customers', ['is_deleted'])

    # ==========================================================================
    # 2. INVOICES
    # ==========================================================================
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='DRAFT'),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('subtotal', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('taxable_value', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('cgst_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('cgst_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('sgst_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('sgst_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('round_off', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('paid_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('due_amount', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_note', sa.String(length=255), nullable=True),
        sa.Column('delivery_note', sa.String(length=128), nullable=True),
        sa.Column('buyer_order_no', sa.String(length=128), nullable=True),
        sa.Column('dispatch_doc_no', sa.String(length=128), nullable=True),
        sa.Column('delivery_note_date', sa.Date(), nullable=True),
        sa.Column('dispatched_through', sa.String(length=128), nullable=True),
        sa.Column('terms_of_delivery', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number', 'type', name='uq_invoices_number_type'),
        sa.CheckConstraint("type IN ('PURCHASE', 'SALE')", name='ck_invoices_type'),
        sa.CheckConstraint("status IN ('DRAFT', 'SUBMITTED', 'PAID', 'CANCELLED')", name='ck_invoices_status'),
        sa.CheckConstraint(
            "payment_status IN ('UNPAID', 'PARTIAL', 'PAID', 'ON_CREDIT')",
            name='ck_invoices_payment_status',
        ),
        sa.CheckConstraint(
            "(type = 'PURCHASE' AND supplier_id IS NOT NULL AND customer_id IS NULL)"
            " OR (type = 'SALE' AND customer_id IS NOT NULL AND supplier_id IS NULL)",
            name='ck_invoices_counterparty',
        ),
    )
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_payment_status', 'invoices', ['payment_status'])
    op.create_index('ix_invoices_supplier_id', 'invoices', ['supplier_id'])
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_type_date', 'invoices', ['type', 'date'])
    op.create_index('ix_invoices_type_status', 'invoices', ['type', 'status'])

    op.create_table('invoice_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('part_id', sa.Integer(), nullable=False),
        sa.Column('hsn_code', sa.String(length=32), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('rate', sa.Numeric(14, 2), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_items_quantity_positive'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['part_id'], ['parts.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_part_id', 'invoice_items', ['part_id'])

    # ==========================================================================
    # 3. STOCK LEDGER
    # ==========================================================================
    op.create_table('inventory_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('part_id', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=3), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('invoice_item_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('quantity > 0', name='ck_invtx_quantity_positive'),
        sa.CheckConstraint("direction IN ('IN', 'OUT')", name='ck_invtx_direction'),
        sa.ForeignKeyConstraint(['part_id'], ['parts.id']),
        sa.ForeignKeyConstraint(['invoice_item_id'], ['invoice_items.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_inventory_transactions_part_id', 'inventory_transactions', ['part_id'])
    op.create_index('ix_inventory_transactions_invoice_item_id', 'inventory_transactions', ['invoice_item_id'])
    op.create_index('ix_invtx_part_direction', 'inventory_transactions', ['part_id', 'direction'])

    # ==========================================================================
    # 4. NUMBERING BUCKETS
    # ==========================================================================
    op.create_table('invoice_number_buckets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_type', sa.String(length=16), nullable=False),
        sa.Column('period', sa.String(length=16), nullable=False),
        sa.Column('claims', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_type', 'period', name='uq_invoice_number_buckets_type_period'),
    )


def downgrade():
    op.drop_table('invoice_number_buckets')

    op.drop_index('ix_invtx_part_direction', table_name='inventory_transactions')
    op.drop_index('ix_inventory_transactions_invoice_item_id', table_name='inventory_transactions')
    op.drop_index('ix_inventory_transactions_part_id', table_name='inventory_transactions')
    op.drop_table('inventory_transactions')

    op.drop_index('ix_invoice_items_part_id', table_name='invoice_items')
    op.drop_index('ix_invoice_items_invoice_id', table_name='invoice_items')
    op.drop_table('invoice_items')

    for name in (
        'ix_invoices_type_status', 'ix_invoices_type_date', 'ix_invoices_customer_id',
        'ix_invoices_supplier_id', 'ix_invoices_payment_status', 'ix_invoices_status',
    ):
        op.drop_index(name, table_name='invoices')
    op.drop_table('invoices')

    op.drop_index('ix_customers_is_deleted', table_name='customers')
    op.drop_table('customers')
    op.drop_index('ix_suppliers_is_deleted', table_name='suppliers')
    op.drop_table('suppliers')
    op.drop_index('ix_parts_is_deleted', table_name='parts')
    op.drop_index('ix_parts_item_name', table_name='parts')
    op.drop_table('parts')
