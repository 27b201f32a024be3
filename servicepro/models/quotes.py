"""Quote aggregate: the quote header, its line items and API schemas."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID, uuid4

from sqlmodel import JSON, Column, Field, Relationship, SQLModel


class QuoteStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    APPROVED = "approved"
    DECLINED = "declined"
    EXPIRED = "expired"
    CONVERTED = "converted"


QuoteItemType = Literal["service", "part", "labor", "fee", "discount"]


class Quote(SQLModel, table=True):
    """Quote header. Totals are derived from the items on every write."""

    __tablename__ = "quotes"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    quote_number: str = Field(unique=True, index=True)
    customer_id: Optional[UUID] = Field(default=None, foreign_key="customers.id")
    created_by: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: str = Field(default=QuoteStatus.DRAFT.value, index=True)
    valid_until: Optional[date] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None

    subtotal: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    tax_rate: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=4)
    tax_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    discount_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    declined_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    converted_to_job_id: Optional[UUID] = None
    converted_to_job_at: Optional[datetime] = None
    customer_signature: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    items: List["QuoteItem"] = Relationship(
        back_populates="quote",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "QuoteItem.sort_order",
        },
    )


class QuoteItem(SQLModel, table=True):
    """Quote line. Owned by exactly one quote."""

    __tablename__ = "quote_items"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    quote_id: UUID = Field(foreign_key="quotes.id", index=True)
    item_type: str  # service | part | labor | fee | discount
    name: str
    description: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("1"), max_digits=10, decimal_places=2)
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    total_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    inventory_item_id: Optional[str] = None
    sort_order: int = 0

    quote: Optional[Quote] = Relationship(back_populates="items")


# Pydantic models for API requests/responses
class QuoteItemCreate(SQLModel):
    item_type: QuoteItemType
    name: str
    description: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    inventory_item_id: Optional[str] = None


class QuoteItemPublic(SQLModel):
    id: UUID
    item_type: str
    name: str
    description: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    inventory_item_id: Optional[str] = None
    sort_order: int = 0


class QuoteCreate(SQLModel):
    """Request model for creating a quote."""
    title: str
    customer_id: Optional[UUID] = None
    created_by: Optional[str] = None
    description: Optional[str] = None
    valid_until: Optional[date] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    items: List[QuoteItemCreate] = Field(default_factory=list)


class QuoteUpdate(SQLModel):
    """Request model for editing a quote; ``items`` replaces every line."""
    title: Optional[str] = None
    description: Optional[str] = None
    valid_until: Optional[date] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    items: Optional[List[QuoteItemCreate]] = None


class QuotePublic(SQLModel):
    id: UUID
    quote_number: str
    customer_id: Optional[UUID] = None
    created_by: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: str
    valid_until: Optional[date] = None
    terms_and_conditions: Optional[str] = None
    notes: Optional[str] = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    declined_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    converted_to_job_id: Optional[UUID] = None
    converted_to_job_at: Optional[datetime] = None
    customer_signature: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime
    items: List[QuoteItemPublic] = Field(default_factory=list)


class QuoteApproval(SQLModel):
    signature_data: str
    device_info: Optional[str] = None
    signed_at: Optional[datetime] = None


class QuoteDecline(SQLModel):
    reason: Optional[str] = None


class QuoteFilters(SQLModel):
    status: Optional[List[str]] = None
    customer_id: Optional[UUID] = None
    created_by: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    search_term: Optional[str] = None


class QuoteListResponse(SQLModel):
    quotes: List[QuotePublic] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    per_page: int = 20
    total_pages: int = 0
    from_cache: bool = False


class QuoteDetailResponse(SQLModel):
    quote: Optional[QuotePublic] = None
    from_cache: bool = False


class QuoteStatistics(SQLModel):
    total_quotes: int = 0
    quotes_by_status: Dict[str, int] = Field(default_factory=dict)
    total_quoted_amount: Decimal = Decimal("0.00")
    average_quote_value: Decimal = Decimal("0.00")
    approval_rate: float = 0.0
    conversion_rate: float = 0.0
    monthly_quotes: List[Dict[str, Any]] = Field(default_factory=list)
