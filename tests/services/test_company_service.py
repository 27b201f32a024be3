from decimal import Decimal

import pytest
from sqlmodel import Session

from servicepro.core.errors import SettingsNotConfiguredError, ValidationError
from servicepro.models.company import CompanySettings, CompanySettingsUpdate
from servicepro.services import CompanySettingsService


class TestCompanySettingsService:
    """Test cases for CompanySettingsService."""

    def test_require_settings_without_row(self, db: Session):
        with pytest.raises(SettingsNotConfiguredError):
            CompanySettingsService(db).require_settings()

    def test_initialize_creates_defaults_once(self, db: Session):
        service = CompanySettingsService(db)

        first = service.initialize_settings()
        second = service.initialize_settings()

        assert first.id == second.id
        assert first.company_name_en == "ServicePro"
        assert first.default_vat_rate == Decimal("0.15")
        assert first.next_quote_number == 1000
        assert first.quote_number_prefix == "QUO-"

    def test_update_settings(self, db: Session, company_settings: CompanySettings):
        updated = CompanySettingsService(db).update_settings(CompanySettingsUpdate(
            vat_number="310122393500003",
            commercial_registration="1010123456",
            email="billing@servicepro.example",
            next_invoice_number=2000,
        ))

        assert updated.vat_number == "310122393500003"
        assert updated.next_invoice_number == 2000
        assert updated.company_name_en == "ServicePro"

    def test_update_rejects_invalid_fields(self, db: Session, company_settings: CompanySettings):
        with pytest.raises(ValidationError) as exc_info:
            CompanySettingsService(db).update_settings(CompanySettingsUpdate(
                vat_number="123",
                email="not-an-email",
                website="servicepro.example",
                default_vat_rate=Decimal("1.5"),
                quote_validity_days=0,
            ))

        errors = exc_info.value.errors
        assert "VAT number must be exactly 15 digits" in errors
        assert "Invalid email format" in errors
        assert "Website must start with http:// or https://" in errors
        assert "VAT rate must be between 0 and 1 (0-100%)" in errors
        assert "Quote validity must be between 1 and 365 days" in errors

    def test_counters_cannot_move_backwards(self, db: Session, company_settings: CompanySettings):
        service = CompanySettingsService(db)

        with pytest.raises(ValidationError) as exc_info:
            service.update_settings(CompanySettingsUpdate(next_quote_number=999))

        assert "next_quote_number cannot be lowered below 1000" in exc_info.value.errors
        assert service.require_settings(refresh=True).next_quote_number == 1000

    def test_blank_company_name(self, db: Session, company_settings: CompanySettings):
        errors = CompanySettingsService(db).validate_settings(
            CompanySettingsUpdate(company_name_en="  ", quote_number_prefix="")
        )
        assert errors == [
            "Company name in English is required",
            "quote_number_prefix cannot be empty",
        ]

    def test_company_name_must_fit_qr_code(self, db: Session, company_settings: CompanySettings):
        service = CompanySettingsService(db)

        errors = service.validate_settings(CompanySettingsUpdate(company_name_en="ش" * 128))
        assert errors == ["Company name in English cannot exceed 255 bytes"]

        with pytest.raises(ValidationError):
            service.update_settings(CompanySettingsUpdate(company_name_en="A" * 256))
        assert service.validate_settings(CompanySettingsUpdate(company_name_en="A" * 255)) == []
