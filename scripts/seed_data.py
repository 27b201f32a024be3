#!/usr/bin/env python3
"""
Seed data script for ServicePro.
Applies the schema migrations and creates the default company settings
(numbering prefixes, counters, VAT rate) if none exist yet.
"""

import logging
import subprocess
import sys
from pathlib import Path

from sqlmodel import Session

from servicepro.core.db import engine, init_local_cache
from servicepro.services import CompanySettingsService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_migrations():
    """Run alembic upgrade to ensure all migrations are applied."""
    try:
        logger.info("Running schema migrations...")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=Path(__file__).parent.parent,
            capture_output=True,
            text=True,
            check=True
        )
        logger.info("Migration completed successfully")
        logger.info(f"Migration output: {result.stdout}")
        return True
    except subprocess.CalledProcessError as e:
        logger.error(f"Migration failed: {e}")
        logger.error(f"Error output: {e.stderr}")
        return False


def seed_company_settings():
    """Create the default company settings row."""
    with Session(engine) as session:
        company_settings = CompanySettingsService(session).initialize_settings()
        logger.info(
            f"Company settings ready: {company_settings.company_name_en}, "
            f"next quote {company_settings.quote_number_prefix}{company_settings.next_quote_number}"
        )


def main():
    """Main function."""
    logger.info("Starting seed data script...")

    if not run_migrations():
        logger.error("Seed data script failed")
        sys.exit(1)

    seed_company_settings()
    init_local_cache()
    logger.info("Seed data script completed successfully")


if __name__ == "__main__":
    main()
