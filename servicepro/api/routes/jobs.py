"""Jobs API endpoints."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from servicepro.api.deps import get_db, get_offline_store, http_error, queued_response
from servicepro.core.errors import OfflineQueuedError, ServiceProError
from servicepro.models.jobs import (
    ChecklistItemUpdate,
    JobChecklistPublic,
    JobCreate,
    JobDetailResponse,
    JobListResponse,
    JobNoteCreate,
    JobNotePublic,
    JobPartCreate,
    JobPartPublic,
    JobPublic,
    JobStatusUpdate,
    JobVisit,
    TechnicianTimeEntry,
    TimeEntryCreate,
    TimeEntryPublic,
    TimeTrackingStats,
)
from servicepro.services import JobService, OfflineStore

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/", response_model=JobListResponse)
def list_jobs(
    technician_id: Optional[UUID] = None,
    status: Optional[Literal["scheduled", "in_progress", "completed", "cancelled"]] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
) -> JobListResponse:
    """
    List jobs by scheduled date. Falls back to the local cache.
    """
    return JobService(session, store).list_jobs(technician_id, status, limit, offset)


@router.get("/time-tracking/stats", response_model=TimeTrackingStats)
def get_time_tracking_stats(
    technician: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    return JobService(session, store).get_time_tracking_stats(technician, start, end)


@router.get("/technicians/{technician}/time-entries", response_model=List[TechnicianTimeEntry])
def get_technician_time_entries(
    technician: str,
    start: datetime,
    end: datetime,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    return JobService(session, store).get_technician_time_entries(technician, start, end)


@router.post("/", response_model=JobPublic, status_code=201)
def create_job(
    request: JobCreate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).create_job(request)
    except ServiceProError as e:
        raise http_error(e)


@router.get("/{job_id}", response_model=JobDetailResponse)
def get_job(
    job_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).get_job(job_id)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{job_id}/status", response_model=JobPublic)
def update_job_status(
    job_id: UUID,
    update: JobStatusUpdate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Move a job along scheduled -> in_progress -> completed, or cancel it.
    """
    try:
        return JobService(session, store).update_status(job_id, update.status)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{job_id}/parts", response_model=JobPartPublic, status_code=201)
def add_job_part(
    job_id: UUID,
    part: JobPartCreate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).add_part(job_id, part)
    except ServiceProError as e:
        raise http_error(e)


@router.get("/{job_id}/checklist", response_model=JobChecklistPublic)
def get_job_checklist(
    job_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).get_checklist(job_id)
    except ServiceProError as e:
        raise http_error(e)


@router.patch("/{job_id}/checklist/{item_id}", response_model=JobChecklistPublic)
def update_checklist_item(
    job_id: UUID,
    item_id: str,
    update: ChecklistItemUpdate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).set_checklist_item(job_id, item_id, update.completed)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{job_id}/notes", response_model=JobNotePublic, status_code=201)
def add_job_note(
    job_id: UUID,
    note: JobNoteCreate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).add_note(job_id, note)
    except OfflineQueuedError as e:
        return queued_response(e)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{job_id}/time-entries", response_model=TimeEntryPublic, status_code=201)
def record_time_entry(
    job_id: UUID,
    entry: TimeEntryCreate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Record a technician check-in or check-out.
    """
    try:
        return JobService(session, store).record_time_entry(job_id, entry)
    except OfflineQueuedError as e:
        return queued_response(e)
    except ServiceProError as e:
        raise http_error(e)


@router.get("/{job_id}/time-entries", response_model=List[TimeEntryPublic])
def get_time_entries(
    job_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return JobService(session, store).get_time_entries(job_id)
    except ServiceProError as e:
        raise http_error(e)


@router.get("/{job_id}/visits", response_model=List[JobVisit])
def get_job_visits(
    job_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Check-in / check-out pairs for a job, most recent first.
    """
    try:
        return JobService(session, store).get_job_visits(job_id)
    except ServiceProError as e:
        raise http_error(e)
