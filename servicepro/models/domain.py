"""Domain models for the people a job involves."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel


class Customer(SQLModel, table=True):
    """Customer model representing residential or commercial clients."""

    __tablename__ = "customers"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str
    customer_type: str = Field(default="residential")  # residential | commercial
    email: Optional[str] = None
    phone_mobile: Optional[str] = None
    phone_work: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Technician(SQLModel, table=True):
    """Field technician that jobs are assigned to."""

    __tablename__ = "technicians"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = True
