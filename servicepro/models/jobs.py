"""Job models: the job itself, its checklist, parts usage, notes and visits."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID, uuid4

from sqlmodel import JSON, Column, Field, SQLModel

from servicepro.models.quotes import QuotePublic


class JobStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Job(SQLModel, table=True):
    """Work order for a technician. ``quote_id`` is set when converted from a quote."""

    __tablename__ = "jobs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_number: str = Field(unique=True, index=True)
    title: str
    description: Optional[str] = None
    customer_id: Optional[UUID] = Field(default=None, foreign_key="customers.id")
    technician_id: Optional[UUID] = Field(default=None, foreign_key="technicians.id")
    quote_id: Optional[UUID] = Field(default=None, foreign_key="quotes.id", index=True)
    status: str = Field(default=JobStatus.SCHEDULED.value, index=True)
    priority: str = "medium"
    service_type: str = "general"
    scheduled_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_cost: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    total_cost: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    quote_converted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class JobChecklist(SQLModel, table=True):
    """One checklist per job; items are stored inline as JSON."""

    __tablename__ = "job_checklists"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_id: UUID = Field(foreign_key="jobs.id", unique=True)
    template_name: Optional[str] = None
    items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    completed_count: int = 0
    total_count: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class JobPart(SQLModel, table=True):
    """Parts consumed on a job, with the unit cost at time of use."""

    __tablename__ = "job_parts"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_id: UUID = Field(foreign_key="jobs.id", index=True)
    name: str
    part_number: Optional[str] = None
    unit_cost: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    quantity_used: Decimal = Field(default=Decimal("1"), max_digits=10, decimal_places=2)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class JobNote(SQLModel, table=True):
    __tablename__ = "job_notes"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_id: UUID = Field(foreign_key="jobs.id", index=True)
    text: str
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TimeEntry(SQLModel, table=True):
    """Technician check-in / check-out on site."""

    __tablename__ = "time_entries"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    job_id: UUID = Field(foreign_key="jobs.id", index=True)
    event: str  # check_in | check_out
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_by: Optional[str] = None


# Pydantic models for API requests/responses
class JobCreate(SQLModel):
    title: str
    description: Optional[str] = None
    customer_id: Optional[UUID] = None
    technician_id: Optional[UUID] = None
    priority: str = "medium"
    service_type: str = "general"
    scheduled_date: Optional[datetime] = None
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)


class JobPublic(SQLModel):
    id: UUID
    job_number: str
    title: str
    description: Optional[str] = None
    customer_id: Optional[UUID] = None
    technician_id: Optional[UUID] = None
    quote_id: Optional[UUID] = None
    status: str
    priority: str
    service_type: str
    scheduled_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_cost: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    quote_converted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class JobListResponse(SQLModel):
    jobs: List[JobPublic] = Field(default_factory=list)
    count: int = 0
    limit: int = 50
    offset: int = 0
    from_cache: bool = False


class JobDetailResponse(SQLModel):
    job: Optional[JobPublic] = None
    from_cache: bool = False


class JobStatusUpdate(SQLModel):
    status: Literal["scheduled", "in_progress", "completed", "cancelled"]


class ChecklistItem(SQLModel):
    id: str
    text: str
    required: bool = False
    completed: bool = False
    completed_at: Optional[datetime] = None


class JobChecklistPublic(SQLModel):
    id: UUID
    job_id: UUID
    template_name: Optional[str] = None
    items: List[ChecklistItem] = Field(default_factory=list)
    completed_count: int
    total_count: int
    created_at: datetime
    updated_at: datetime


class ChecklistItemUpdate(SQLModel):
    completed: bool


class JobPartCreate(SQLModel):
    name: str
    part_number: Optional[str] = None
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    quantity_used: Decimal = Field(default=Decimal("1"), gt=0)


class JobPartPublic(JobPartCreate):
    id: UUID
    job_id: UUID
    created_at: datetime


class JobNoteCreate(SQLModel):
    text: str
    created_by: Optional[str] = None


class JobNotePublic(JobNoteCreate):
    id: UUID
    job_id: UUID
    created_at: datetime


class TimeEntryCreate(SQLModel):
    event: Literal["check_in", "check_out"]
    timestamp: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_by: Optional[str] = None


class TimeEntryPublic(SQLModel):
    id: UUID
    job_id: UUID
    event: str
    timestamp: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_by: Optional[str] = None


class TechnicianTimeEntry(TimeEntryPublic):
    job_title: Optional[str] = None


class JobVisit(SQLModel):
    """A check-in and its matching check-out, if the technician has left."""
    job_id: UUID
    technician: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class TimeTrackingStats(SQLModel):
    total_hours_worked: float = 0
    location_compliance_rate: int = 0  # percent of visits checked in with a location
    average_time_per_job: float = 0  # minutes
    total_jobs_tracked: int = 0


class ConversionResult(SQLModel):
    """Outcome of turning an approved quote into a job."""
    quote: QuotePublic
    job: JobPublic
    checklist: JobChecklistPublic


class QuoteConversionRequest(SQLModel):
    technician_id: Optional[UUID] = None
    scheduled_date: Optional[datetime] = None
