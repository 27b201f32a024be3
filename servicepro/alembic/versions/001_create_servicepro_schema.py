"""Create ServicePro tables

Revision ID: 001_create_servicepro_schema
Revises: 
Create Date: 2025-06-02 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_create_servicepro_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create company_settings table
    op.create_table(
        'company_settings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('company_name_en', sa.Text(), nullable=False),
        sa.Column('company_name_ar', sa.Text(), nullable=True),
        sa.Column('vat_number', sa.Text(), nullable=True),
        sa.Column('commercial_registration', sa.Text(), nullable=True),
        sa.Column('business_type', sa.Text(), nullable=False, server_default='company'),
        sa.Column('address_en', sa.Text(), nullable=True),
        sa.Column('address_ar', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('region', sa.Text(), nullable=True),
        sa.Column('postal_code', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('zatca_environment', sa.Text(), nullable=False, server_default='sandbox'),
        sa.Column('is_zatca_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('default_vat_rate', sa.Numeric(5, 4), nullable=False, server_default='0.15'),
        sa.Column('default_currency', sa.Text(), nullable=False, server_default='SAR'),
        sa.Column('quote_validity_days', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('quote_number_prefix', sa.Text(), nullable=False, server_default='QUO-'),
        sa.Column('invoice_number_prefix', sa.Text(), nullable=False, server_default='INV-'),
        sa.Column('job_number_prefix', sa.Text(), nullable=False, server_default='JOB-'),
        sa.Column('next_quote_number', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('next_invoice_number', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('next_job_number', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint("default_vat_rate >= 0 AND default_vat_rate <= 1", name='check_company_vat_rate'),
        sa.CheckConstraint("zatca_environment IN ('sandbox','production')", name='check_zatca_environment'),
    )

    # Create customers table
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('customer_type', sa.Text(), nullable=False, server_default='residential'),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone_mobile', sa.Text(), nullable=True),
        sa.Column('phone_work', sa.Text(), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint("customer_type IN ('residential','commercial')", name='check_customer_type'),
    )

    # Create technicians table
    op.create_table(
        'technicians',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('full_name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    # Create quotes table
    op.create_table(
        'quotes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('quote_number', sa.Text(), nullable=False),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='draft'),
        sa.Column('valid_until', sa.Date(), nullable=True),
        sa.Column('terms_and_conditions', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(5, 4), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('viewed_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('declined_at', sa.DateTime(), nullable=True),
        sa.Column('declined_reason', sa.Text(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('converted_to_job_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('converted_to_job_at', sa.DateTime(), nullable=True),
        sa.Column('customer_signature', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.CheckConstraint(
            "status IN ('draft','sent','viewed','approved','declined','expired','converted')",
            name='check_quote_status'
        ),
        sa.CheckConstraint("discount_amount <= subtotal", name='check_quote_discount'),
    )
    op.create_index('idx_quotes_quote_number', 'quotes', ['quote_number'], unique=True)
    op.create_index('idx_quotes_status', 'quotes', ['status'])

    # Create quote_items table
    op.create_table(
        'quote_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('quote_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('item_type', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('quantity', sa.Numeric(10, 2), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('inventory_item_id', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['quote_id'], ['quotes.id'], ondelete='CASCADE'),
        sa.CheckConstraint("item_type IN ('service','part','labor','fee','discount')", name='check_quote_item_type'),
        sa.CheckConstraint("quantity > 0", name='check_quote_item_quantity'),
    )
    op.create_index('idx_quote_items_quote_id', 'quote_items', ['quote_id'])

    # Create jobs table
    op.create_table(
        'jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_number', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('technician_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('quote_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='scheduled'),
        sa.Column('priority', sa.Text(), nullable=False, server_default='medium'),
        sa.Column('service_type', sa.Text(), nullable=False, server_default='general'),
        sa.Column('scheduled_date', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('estimated_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('total_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('quote_converted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['technician_id'], ['technicians.id']),
        sa.ForeignKeyConstraint(['quote_id'], ['quotes.id']),
        sa.CheckConstraint("status IN ('scheduled','in_progress','completed','cancelled')", name='check_job_status'),
    )
    op.create_index('idx_jobs_job_number', 'jobs', ['job_number'], unique=True)
    op.create_index('idx_jobs_quote_id', 'jobs', ['quote_id'])

    # Create job_checklists table
    op.create_table(
        'job_checklists',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column('template_name', sa.Text(), nullable=True),
        sa.Column('items', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('completed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
    )

    # Create job_parts, job_notes and time_entries tables
    op.create_table(
        'job_parts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('part_number', sa.Text(), nullable=True),
        sa.Column('unit_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('quantity_used', sa.Numeric(10, 2), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_job_parts_job_id', 'job_parts', ['job_id'])

    op.create_table(
        'job_notes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_job_notes_job_id', 'job_notes', ['job_id'])

    op.create_table(
        'time_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event', sa.Text(), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
        sa.CheckConstraint("event IN ('check_in','check_out')", name='check_time_entry_event'),
    )
    op.create_index('idx_time_entries_job_id', 'time_entries', ['job_id'])

    # Create invoices table
    op.create_table(
        'invoices',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('job_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quote_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('invoice_number', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='draft'),
        sa.Column('customer_name', sa.Text(), nullable=True),
        sa.Column('customer_email', sa.Text(), nullable=True),
        sa.Column('customer_address', sa.Text(), nullable=True),
        sa.Column('customer_phone', sa.Text(), nullable=True),
        sa.Column('customer_type', sa.Text(), nullable=True),
        sa.Column('job_title', sa.Text(), nullable=False),
        sa.Column('job_description', sa.Text(), nullable=True),
        sa.Column('service_date', sa.DateTime(), nullable=True),
        sa.Column('completion_date', sa.DateTime(), nullable=True),
        sa.Column('technician_name', sa.Text(), nullable=True),
        sa.Column('labor_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('parts_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('additional_charges', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('vat_rate', sa.Numeric(5, 4), nullable=False, server_default='0.15'),
        sa.Column('vat_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('zatca_qr_code', sa.Text(), nullable=True),
        sa.Column('commercial_registration', sa.Text(), nullable=True),
        sa.Column('vat_registration_number', sa.Text(), nullable=True),
        sa.Column('payment_terms', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.Text(), nullable=True),
        sa.Column('payment_reference', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('issued_date', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('due_date', sa.DateTime(), nullable=False),
        sa.Column('paid_date', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
        sa.ForeignKeyConstraint(['quote_id'], ['quotes.id']),
        sa.CheckConstraint("status IN ('draft','sent','paid','overdue','cancelled')", name='check_invoice_status'),
    )
    op.create_index('idx_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('idx_invoices_job_id', 'invoices', ['job_id'])
    # At most one live invoice per job
    op.create_index(
        'idx_invoices_one_active_per_job',
        'invoices',
        ['job_id'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'")
    )

    # Create invoice_items table
    op.create_table(
        'invoice_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('invoice_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Numeric(10, 2), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('item_type', sa.Text(), nullable=False),
        sa.Column('job_checklist_item_id', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.CheckConstraint("item_type IN ('service','parts','additional')", name='check_invoice_item_type'),
    )
    op.create_index('idx_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])


def downgrade():
    # Drop tables in reverse order
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('time_entries')
    op.drop_table('job_notes')
    op.drop_table('job_parts')
    op.drop_table('job_checklists')
    op.drop_table('jobs')
    op.drop_table('quote_items')
    op.drop_table('quotes')
    op.drop_table('technicians')
    op.drop_table('customers')
    op.drop_table('company_settings')
