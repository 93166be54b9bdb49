"""initial pos schema

Revision ID: 0001_initial_pos_schema
Revises:
Create Date: 2026-10-16 00:00:00.000000

Creates the point-of-sale schema from scratch:
- tenants / locations: tenant boundary, per-location tax rate
- employees / session_tokens: sign-in and bearer sessions
- products / services: catalog
- cash_drawer_sessions / drawer_activities: shifts and drawer opens
- transactions / line_items: sales and refunds
- audit_logs / store_exceptions / consultation_requests
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_pos_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False, server_default=True):
    if server_default:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable,
                         server_default=sa.text('CURRENT_TIMESTAMP'))
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    # ============================================================================
    # tenancy
    # ============================================================================
    op.create_table(
        'tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('offline_terms_accepted_at', nullable=True, server_default=False),
        _timestamp('offline_risk_acknowledged_at', nullable=True, server_default=False),
        sa.Column('offline_terms_accepted_by_id', sa.Integer(), nullable=True),
        sa.Column('offline_terms_version', sa.String(length=16), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('tax_rate_bps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_locations_tenant_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_locations_tenant_id', 'locations', ['tenant_id'])

    # ============================================================================
    # employees and sessions
    # ============================================================================
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='CASHIER'),
        sa.Column('can_refund', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'username', name='uq_employees_tenant_username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_employees_tenant_id', 'employees', ['tenant_id'])
    op.create_index('ix_employees_location_id', 'employees', ['location_id'])
    op.create_index('ix_employees_username', 'employees', ['username'])
    op.create_index('ix_employees_is_active', 'employees', ['is_active'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        _timestamp('created_at'),
        _timestamp('last_used_at'),
        _timestamp('expires_at', server_default=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp('revoked_at', nullable=True, server_default=False),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_employee_id', 'session_tokens', ['employee_id'])
    op.create_index('ix_session_tokens_tenant_id', 'session_tokens', ['tenant_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_employee_active', 'session_tokens', ['employee_id', 'is_revoked'])

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'sku', name='uq_products_tenant_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_tenant_id', 'products', ['tenant_id'])
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_is_active', 'products', ['is_active'])
    op.create_index('ix_products_tenant_barcode', 'products', ['tenant_id', 'barcode'])

    op.create_table(
        'services',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_services_tenant_id', 'services', ['tenant_id'])

    # ============================================================================
    # registers
    # ============================================================================
    op.create_table(
        'cash_drawer_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('drawer_id', sa.String(length=64), nullable=False, server_default='main'),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        _timestamp('start_time'),
        _timestamp('end_time', nullable=True, server_default=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_drawer_sessions_tenant_id', 'cash_drawer_sessions', ['tenant_id'])
    op.create_index('ix_cash_drawer_sessions_location_id', 'cash_drawer_sessions', ['location_id'])
    op.create_index('ix_cash_drawer_sessions_employee_id', 'cash_drawer_sessions', ['employee_id'])
    op.create_index('ix_cash_drawer_sessions_start_time', 'cash_drawer_sessions', ['start_time'])
    # One open shift per drawer
    op.create_index(
        'uq_cash_drawer_sessions_open_drawer',
        'cash_drawer_sessions',
        ['location_id', 'drawer_id'],
        unique=True,
        sqlite_where=sa.text('end_time IS NULL'),
        postgresql_where=sa.text('end_time IS NULL'),
    )

    # ============================================================================
    # transactions
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='COMPLETED'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='CASH'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tip_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('original_transaction_id', sa.Integer(), nullable=True),
        sa.Column('cash_drawer_session_id', sa.Integer(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),
        sa.Column('receipt_number', sa.String(length=64), nullable=True),
        sa.Column('source', sa.String(length=16), nullable=False, server_default='POS'),
        _timestamp('captured_at', nullable=True, server_default=False),
        sa.Column('refund_reason', sa.String(length=255), nullable=True),
        _timestamp('created_at'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['original_transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['cash_drawer_session_id'], ['cash_drawer_sessions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'idempotency_key', name='uq_transactions_tenant_idempotency'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_tenant_id', 'transactions', ['tenant_id'])
    op.create_index('ix_transactions_location_id', 'transactions', ['location_id'])
    op.create_index('ix_transactions_employee_id', 'transactions', ['employee_id'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_original_transaction_id', 'transactions', ['original_transaction_id'])
    op.create_index('ix_transactions_cash_drawer_session_id', 'transactions', ['cash_drawer_session_id'])
    op.create_index('ix_transactions_receipt_number', 'transactions', ['receipt_number'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_tenant_status_created', 'transactions', ['tenant_id', 'status', 'created_at'])

    op.create_table(
        'line_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='PRODUCT'),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('service_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('refunds_line_item_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['service_id'], ['services.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['refunds_line_item_id'], ['line_items.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_line_items_transaction_id', 'line_items', ['transaction_id'])
    op.create_index('ix_line_items_product_id', 'line_items', ['product_id'])
    op.create_index('ix_line_items_refunds_line_item_id', 'line_items', ['refunds_line_item_id'])

    op.create_table(
        'drawer_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('cash_drawer_session_id', sa.Integer(), nullable=True),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('reason', sa.String(length=64), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=True),
        sa.Column('expected_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        _timestamp('timestamp'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['cash_drawer_session_id'], ['cash_drawer_sessions.id']),
        sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_drawer_activities_tenant_id', 'drawer_activities', ['tenant_id'])
    op.create_index('ix_drawer_activities_cash_drawer_session_id', 'drawer_activities', ['cash_drawer_session_id'])
    op.create_index('ix_drawer_activities_type', 'drawer_activities', ['type'])
    op.create_index('ix_drawer_activities_location_time', 'drawer_activities', ['location_id', 'timestamp'])

    # ============================================================================
    # audit, exceptions, consultations
    # ============================================================================
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('dedupe_key', sa.String(length=191), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['actor_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedupe_key'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_tenant_id', 'audit_logs', ['tenant_id'])
    op.create_index('ix_audit_logs_event_type', 'audit_logs', ['event_type'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_tenant_entity', 'audit_logs', ['tenant_id', 'entity_type', 'entity_id'])

    op.create_table(
        'store_exceptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=64), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False, server_default='WARNING'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('occurrence_count', sa.Integer(), nullable=False, server_default='1'),
        _timestamp('last_seen_at'),
        sa.Column('acknowledged_by_id', sa.Integer(), nullable=True),
        _timestamp('acknowledged_at', nullable=True, server_default=False),
        sa.Column('resolved_by_id', sa.Integer(), nullable=True),
        _timestamp('resolved_at', nullable=True, server_default=False),
        sa.Column('resolution_note', sa.Text(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['acknowledged_by_id'], ['employees.id']),
        sa.ForeignKeyConstraint(['resolved_by_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_store_exceptions_tenant_id', 'store_exceptions', ['tenant_id'])
    op.create_index('ix_store_exceptions_tenant_status', 'store_exceptions', ['tenant_id', 'status'])

    op.create_table(
        'consultation_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('requested_by_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('preferred_time', sa.String(length=64), nullable=True),
        sa.Column('contact_phone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['requested_by_id'], ['employees.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_consultation_requests_tenant_id', 'consultation_requests', ['tenant_id'])


def downgrade():
    op.drop_table('consultation_requests')
    op.drop_table('store_exceptions')
    op.drop_table('audit_logs')
    op.drop_table('drawer_activities')
    op.drop_table('line_items')
    op.drop_table('transactions')
    op.drop_table('cash_drawer_sessions')
    op.drop_table('services')
    op.drop_table('products')
    op.drop_table('session_tokens')
    op.drop_table('employees')
    op.drop_table('locations')
    op.drop_table('tenants')
