"""Company settings: the per-tenant singleton holding numbering and tax config."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class CompanySettingsBase(SQLModel):
    company_name_en: str = "ServicePro"
    company_name_ar: Optional[str] = None

    vat_number: Optional[str] = None
    commercial_registration: Optional[str] = None
    business_type: str = "company"  # individual | establishment | company | non_profit | government

    address_en: Optional[str] = None
    address_ar: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None

    zatca_environment: str = "sandbox"  # sandbox | production
    is_zatca_enabled: bool = True

    default_vat_rate: Decimal = Field(default=Decimal("0.15"), max_digits=5, decimal_places=4)
    default_currency: str = "SAR"
    quote_validity_days: int = 30

    quote_number_prefix: str = "QUO-"
    invoice_number_prefix: str = "INV-"
    job_number_prefix: str = "JOB-"


class CompanySettings(CompanySettingsBase, table=True):
    """Active company profile; counters only ever move forward."""

    __tablename__ = "company_settings"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    next_quote_number: int = 1000
    next_invoice_number: int = 1000
    next_job_number: int = 1000
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CompanySettingsPublic(CompanySettingsBase):
    id: UUID
    next_quote_number: int
    next_invoice_number: int
    next_job_number: int
    updated_at: datetime


class CompanySettingsUpdate(SQLModel):
    """Partial update; unset fields are left alone."""

    company_name_en: Optional[str] = None
    company_name_ar: Optional[str] = None
    vat_number: Optional[str] = None
    commercial_registration: Optional[str] = None
    business_type: Optional[str] = None
    address_en: Optional[str] = None
    address_ar: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    zatca_environment: Optional[str] = None
    is_zatca_enabled: Optional[bool] = None
    default_vat_rate: Optional[Decimal] = None
    default_currency: Optional[str] = None
    quote_validity_days: Optional[int] = None
    quote_number_prefix: Optional[str] = None
    invoice_number_prefix: Optional[str] = None
    job_number_prefix: Optional[str] = None
    next_quote_number: Optional[int] = None
    next_invoice_number: Optional[int] = None
    next_job_number: Optional[int] = None
