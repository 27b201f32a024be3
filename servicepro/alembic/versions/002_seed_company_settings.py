"""Seed default company settings

Revision ID: 002_seed_company_settings
Revises: 001_create_servicepro_schema
Create Date: 2025-06-02 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_seed_company_settings'
down_revision = '001_create_servicepro_schema'
branch_labels = None
depends_on = None


def upgrade():
    # Insert the default company profile; counters start at 1000
    op.execute("""
        INSERT INTO company_settings (
            company_name_en, company_name_ar, business_type, city, region,
            default_vat_rate, zatca_environment, is_zatca_enabled
        )
        SELECT 'ServicePro', 'سيرفيس برو', 'company', 'Riyadh', 'Riyadh', 0.15, 'sandbox', true
        WHERE NOT EXISTS (SELECT 1 FROM company_settings WHERE is_active)
    """)


def downgrade():
    op.execute("DELETE FROM company_settings WHERE company_name_en = 'ServicePro'")
