"""Initial schema with all tables

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.Enum('ADMIN', 'MANAGER', 'OPERATOR', name='userrole'), nullable=False, server_default='OPERATOR'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # Billing entities and sales channels
    op.create_table(
        'companies',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('vat_code', sa.String(50), nullable=False),
        sa.Column('invoicing_email', sa.String(255), nullable=True),
        sa.Column('invoicing_token', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'stores',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('company_id', sa.String(36), sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True),
    )

    # Orders and shipments
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_number', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='INVOICED'),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('store_id', sa.String(36), sa.ForeignKey('stores.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        'shipments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('awb_number', sa.String(100), nullable=False, unique=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_shipments_order_id', 'shipments', ['order_id'])
    op.create_table(
        'return_shipments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('return_awb_number', sa.String(100), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='received'),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('original_shipment_id', sa.String(36), sa.ForeignKey('shipments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_return_shipment_status_scanned', 'return_shipments', ['status', 'scanned_at'])
    op.create_index('ix_return_shipment_awb', 'return_shipments', ['return_awb_number'])

    # Manifests table
    op.create_table(
        'manifests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('type', sa.Enum('DELIVERY', 'RETURN', name='manifesttype'), nullable=False),
        sa.Column('status', sa.Enum('DRAFT', 'CONFIRMED', 'PROCESSED', name='manifeststatus'), nullable=False, server_default='DRAFT'),
        sa.Column('document_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_manifest_type_status', 'manifests', ['type', 'status'])
    op.create_index('ix_manifest_created_at', 'manifests', ['created_at'])

    # Invoices table (status columns are plain strings holding lowercase values)
    op.create_table(
        'invoices',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('company_id', sa.String(36), sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True),
        sa.Column('series', sa.String(20), nullable=True),
        sa.Column('number', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='issued'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='unpaid'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('cancellation_source', sa.String(20), nullable=True),
        sa.Column('cancelled_from_manifest_id', sa.String(36), sa.ForeignKey('manifests.id', ondelete='SET NULL'), nullable=True),
        sa.Column('storno_series', sa.String(20), nullable=True),
        sa.Column('storno_number', sa.String(50), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('payment_source', sa.String(20), nullable=True),
        sa.Column('paid_from_manifest_id', sa.String(36), sa.ForeignKey('manifests.id', ondelete='SET NULL'), nullable=True),
    )
    op.create_index('ix_invoice_order_status_created', 'invoices', ['order_id', 'status', 'created_at'])

    # Manifest items
    op.create_table(
        'manifest_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('manifest_id', sa.String(36), sa.ForeignKey('manifests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('awb_number', sa.String(100), nullable=False),
        sa.Column('original_awb_number', sa.String(100), nullable=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.Enum('PENDING', 'PROCESSED', 'ERROR', name='manifestitemstatus'), nullable=False, server_default='PENDING'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('active_claim', sa.String(120), nullable=True),
    )
    # At most one open manifest per type may hold an AWB
    op.create_unique_constraint('uq_manifest_items_active_claim', 'manifest_items', ['active_claim'])
    op.create_index('ix_manifest_items_manifest_id', 'manifest_items', ['manifest_id'])
    op.create_index('ix_manifest_item_awb', 'manifest_items', ['awb_number'])
    op.create_index('ix_manifest_item_invoice', 'manifest_items', ['invoice_id'])
    op.create_index('ix_manifest_item_order', 'manifest_items', ['order_id'])

    # Override PIN (single row)
    op.create_table(
        'override_credentials',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('pin_hash', sa.String(255), nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('changed_by', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
    )

    # Audit trail, append-only
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(36), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_audit_entity', 'audit_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_audit_user_action_created', 'audit_logs', ['user_id', 'action', 'created_at'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('override_credentials')
    op.drop_table('manifest_items')
    op.drop_table('invoices')
    op.drop_table('manifests')
    op.drop_table('return_shipments')
    op.drop_table('shipments')
    op.drop_table('orders')
    op.drop_table('stores')
    op.drop_table('companies')
    op.drop_table('users')

    # Drop enum types
    op.execute('DROP TYPE IF EXISTS manifestitemstatus')
    op.execute('DROP TYPE IF EXISTS manifeststatus')
    op.execute('DROP TYPE IF EXISTS manifesttype')
    op.execute('DROP TYPE IF EXISTS userrole')
