"""Invoice models.

An invoice is a snapshot: customer, job and financial fields are copied from
the job when the invoice is generated and are never recomputed afterwards.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from servicepro.models.company import CompanySettingsPublic


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class Invoice(SQLModel, table=True):
    __tablename__ = "invoices"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_id: UUID = Field(foreign_key="jobs.id", index=True)
    quote_id: Optional[UUID] = Field(default=None, foreign_key="quotes.id")
    invoice_number: str = Field(unique=True, index=True)
    status: str = Field(default=InvoiceStatus.DRAFT.value, index=True)

    # Customer snapshot
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_type: Optional[str] = None

    # Job snapshot
    job_title: str
    job_description: Optional[str] = None
    service_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    technician_name: Optional[str] = None

    labor_cost: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    parts_cost: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    additional_charges: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    subtotal: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    vat_rate: Decimal = Field(default=Decimal("0.15"), max_digits=5, decimal_places=4)
    vat_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    discount_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

    zatca_qr_code: Optional[str] = None
    commercial_registration: Optional[str] = None
    vat_registration_number: Optional[str] = None

    payment_terms: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None

    issued_date: datetime = Field(default_factory=datetime.utcnow)
    due_date: datetime
    paid_date: Optional[datetime] = None

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class InvoiceItem(SQLModel, table=True):
    __tablename__ = "invoice_items"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    invoice_id: UUID = Field(foreign_key="invoices.id", index=True)
    description: str
    quantity: Decimal = Field(default=Decimal("1"), max_digits=10, decimal_places=2)
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    total_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    item_type: str  # service | parts | additional
    job_checklist_item_id: Optional[str] = None
    sort_order: int = 0


# Pydantic models for API requests/responses
class InvoiceCreate(SQLModel):
    """Request model for generating an invoice from a completed job."""
    job_id: UUID
    due_days: Optional[int] = Field(default=None, ge=0)
    additional_charges: Decimal = Field(default=Decimal("0"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_terms: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None


class InvoicePublic(SQLModel):
    id: UUID
    job_id: UUID
    quote_id: Optional[UUID] = None
    invoice_number: str
    status: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_type: Optional[str] = None
    job_title: str
    job_description: Optional[str] = None
    service_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    technician_name: Optional[str] = None
    labor_cost: Decimal
    parts_cost: Decimal
    additional_charges: Decimal
    subtotal: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    zatca_qr_code: Optional[str] = None
    commercial_registration: Optional[str] = None
    vat_registration_number: Optional[str] = None
    payment_terms: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    issued_date: datetime
    due_date: datetime
    paid_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class InvoiceItemPublic(SQLModel):
    id: UUID
    invoice_id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    item_type: str
    job_checklist_item_id: Optional[str] = None
    sort_order: int


class InvoiceGenerationResult(SQLModel):
    invoice: InvoicePublic
    invoice_items: List[InvoiceItemPublic] = Field(default_factory=list)
    company_settings: CompanySettingsPublic
    zatca_qr_code: Optional[str] = None


class InvoiceStatusUpdate(SQLModel):
    status: Literal["draft", "sent", "paid", "overdue", "cancelled"]
    payment_reference: Optional[str] = None


class InvoiceQrResponse(SQLModel):
    invoice_id: UUID
    payload: str
    format: str
    fields: Dict[str, Any] = Field(default_factory=dict)
