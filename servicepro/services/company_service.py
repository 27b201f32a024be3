"""Company settings service."""

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlmodel import Session, select

from servicepro.core.errors import SettingsNotConfiguredError, ValidationError
from servicepro.models.company import CompanySettings, CompanySettingsUpdate
from servicepro.services.zatca import (
    TLV_MAX_VALUE_BYTES,
    validate_commercial_registration,
    validate_vat_number,
)

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("next_quote_number", "next_invoice_number", "next_job_number")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
WEBSITE_RE = re.compile(r"^https?://.+")


class CompanySettingsService:
    """Reads and writes the active company settings row."""

    def __init__(self, session: Session):
        self.session = session

    def get_settings(self, refresh: bool = False) -> Optional[CompanySettings]:
        statement = select(CompanySettings).where(CompanySettings.is_active == True)  # noqa: E712
        if refresh:
            statement = statement.execution_options(populate_existing=True)
        return self.session.exec(statement).first()

    def require_settings(self, refresh: bool = False) -> CompanySettings:
        company_settings = self.get_settings(refresh=refresh)
        if company_settings is None:
            raise SettingsNotConfiguredError()
        return company_settings

    def initialize_settings(self) -> CompanySettings:
        """Return the active settings, creating the defaults on first use."""
        existing = self.get_settings()
        if existing:
            return existing

        company_settings = CompanySettings(
            company_name_en="ServicePro",
            company_name_ar="سيرفيس برو",
            business_type="company",
            city="Riyadh",
            region="Riyadh",
            default_vat_rate=Decimal("0.15"),
            zatca_environment="sandbox",
            is_zatca_enabled=True,
        )
        self.session.add(company_settings)
        self.session.commit()
        self.session.refresh(company_settings)
        logger.info("Initialized default company settings %s", company_settings.id)
        return company_settings

    def update_settings(self, update: CompanySettingsUpdate) -> CompanySettings:
        company_settings = self.require_settings()

        errors = self.validate_settings(update)
        changes = update.model_dump(exclude_unset=True)
        for field in COUNTER_FIELDS:
            if field in changes and changes[field] is not None:
                if changes[field] < getattr(company_settings, field):
                    errors.append(f"{field} cannot be lowered below {getattr(company_settings, field)}")
        if errors:
            raise ValidationError("Invalid company settings", errors)

        for field, value in changes.items():
            setattr(company_settings, field, value)
        company_settings.updated_at = datetime.utcnow()

        self.session.add(company_settings)
        self.session.commit()
        self.session.refresh(company_settings)
        return company_settings

    def validate_settings(self, update: CompanySettingsUpdate) -> List[str]:
        errors: List[str] = []
        changes = update.model_dump(exclude_unset=True)

        if "company_name_en" in changes and not (changes["company_name_en"] or "").strip():
            errors.append("Company name in English is required")
        elif len((changes.get("company_name_en") or "").encode("utf-8")) > TLV_MAX_VALUE_BYTES:
            errors.append(f"Company name in English cannot exceed {TLV_MAX_VALUE_BYTES} bytes")

        if changes.get("email") and not EMAIL_RE.match(changes["email"]):
            errors.append("Invalid email format")

        if changes.get("website") and not WEBSITE_RE.match(changes["website"]):
            errors.append("Website must start with http:// or https://")

        rate = changes.get("default_vat_rate")
        if rate is not None and not (Decimal("0") <= rate <= Decimal("1")):
            errors.append("VAT rate must be between 0 and 1 (0-100%)")

        validity = changes.get("quote_validity_days")
        if validity is not None and not (1 <= validity <= 365):
            errors.append("Quote validity must be between 1 and 365 days")

        if changes.get("vat_number"):
            result = validate_vat_number(changes["vat_number"])
            if not result.is_valid:
                errors.append(result.message)

        if changes.get("commercial_registration"):
            result = validate_commercial_registration(changes["commercial_registration"])
            if not result.is_valid:
                errors.append(result.message)

        for prefix_field in ("quote_number_prefix", "invoice_number_prefix", "job_number_prefix"):
            if prefix_field in changes and not changes[prefix_field]:
                errors.append(f"{prefix_field} cannot be empty")

        return errors
