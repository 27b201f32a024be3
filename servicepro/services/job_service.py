"""Job service: job lifecycle, checklist, parts, notes and site visits."""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from servicepro.core.errors import InvalidStatusTransitionError, NotFoundError, OfflineQueuedError
from servicepro.models.jobs import (
    Job,
    JobChecklist,
    JobChecklistPublic,
    JobCreate,
    JobDetailResponse,
    JobListResponse,
    JobNote,
    JobNoteCreate,
    JobNotePublic,
    JobPart,
    JobPartCreate,
    JobPartPublic,
    JobPublic,
    JobStatus,
    JobVisit,
    TechnicianTimeEntry,
    TimeEntry,
    TimeEntryCreate,
    TimeEntryPublic,
    TimeTrackingStats,
)
from servicepro.services.offline_store import OfflineStore
from servicepro.services.quote_service import naive_utc
from servicepro.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.SCHEDULED.value: {JobStatus.IN_PROGRESS.value, JobStatus.CANCELLED.value},
    JobStatus.IN_PROGRESS.value: {JobStatus.COMPLETED.value, JobStatus.CANCELLED.value},
}


def pair_visits(entries: Iterable[TimeEntry]) -> List[JobVisit]:
    """Match each check-in with the next check-out by the same person on the same job.

    A check-out with no open check-in is ignored; a check-in that was never
    closed is returned as an open visit.
    """
    open_visits: Dict[Tuple[UUID, Optional[str]], JobVisit] = {}
    visits: List[JobVisit] = []
    for entry in sorted(entries, key=lambda e: e.timestamp):
        key = (entry.job_id, entry.created_by)
        if entry.event == "check_in":
            if key in open_visits:
                visits.append(open_visits.pop(key))
            open_visits[key] = JobVisit(
                job_id=entry.job_id,
                technician=entry.created_by,
                started_at=entry.timestamp,
                latitude=entry.latitude,
                longitude=entry.longitude,
            )
        elif key in open_visits:
            visit = open_visits.pop(key)
            visit.ended_at = entry.timestamp
            visit.duration_minutes = (visit.ended_at - visit.started_at).total_seconds() / 60
            visits.append(visit)
    visits.extend(open_visits.values())
    return visits


class JobService:
    """Service for jobs and the records technicians attach to them."""

    def __init__(self, session: Session, store: OfflineStore):
        self.session = session
        self.store = store

    def create_job(self, request: JobCreate) -> JobPublic:
        job_number = SequenceService(self.session).next_number("job")
        job = Job(job_number=job_number, **request.model_dump())
        if job.scheduled_date is None:
            job.scheduled_date = datetime.utcnow()
        self.session.add(job)
        self.session.flush()

        self.session.add(JobChecklist(job_id=job.id, items=[], completed_count=0, total_count=0))
        self.session.commit()
        self.session.refresh(job)

        public = JobPublic.model_validate(job)
        self._cache(public)
        logger.info("Created job %s", job.job_number)
        return public

    def get_job(self, job_id: UUID) -> JobDetailResponse:
        try:
            job = self.session.get(Job, job_id)
            public = JobPublic.model_validate(job) if job else None
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning("Failed to fetch job %s from server, using cache: %s", job_id, e)
            public = None

        if public is not None:
            self._cache(public)
            return JobDetailResponse(job=public, from_cache=False)

        cached = self.store.get("jobs", str(job_id))
        if cached is None:
            raise NotFoundError(f"Job {job_id} not found")
        return JobDetailResponse(job=JobPublic.model_validate(cached), from_cache=True)

    def list_jobs(
        self,
        technician_id: Optional[UUID] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> JobListResponse:
        """Jobs by scheduled date. Falls back to the local cache when the server is unreachable."""
        limit = max(limit, 1)
        offset = max(offset, 0)

        try:
            statement = select(Job)
            if technician_id:
                statement = statement.where(Job.technician_id == technician_id)
            if status:
                statement = statement.where(Job.status == status)
            count = self.session.exec(
                select(func.count()).select_from(statement.subquery())
            ).one()
            jobs = self.session.exec(
                statement.order_by(Job.scheduled_date.asc().nulls_last(), Job.job_number)
                .offset(offset)
                .limit(limit)
            ).all()
            results = [JobPublic.model_validate(job) for job in jobs]
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning("Failed to fetch jobs from server, using cache: %s", e)
            return self._list_from_cache(technician_id, status, limit, offset)

        for job in results:
            self._cache(job)
        logger.info("Cached %d jobs from server", len(results))
        return JobListResponse(jobs=results, count=count, limit=limit, offset=offset, from_cache=False)

    def update_status(self, job_id: UUID, status: str) -> JobPublic:
        job = self._require_job(job_id)
        if status not in ALLOWED_TRANSITIONS.get(job.status, set()):
            raise InvalidStatusTransitionError("job", job.status, status)

        now = datetime.utcnow()
        job.status = status
        if status == JobStatus.IN_PROGRESS.value:
            job.started_at = now
        elif status == JobStatus.COMPLETED.value:
            job.completed_at = now
        job.updated_at = now

        self.session.add(job)
        self.session.commit()
        self.session.refresh(job)

        public = JobPublic.model_validate(job)
        self._cache(public)
        return public

    def add_part(self, job_id: UUID, part: JobPartCreate) -> JobPartPublic:
        self._require_job(job_id)
        job_part = JobPart(job_id=job_id, **part.model_dump())
        self.session.add(job_part)
        self.session.commit()
        self.session.refresh(job_part)
        return JobPartPublic.model_validate(job_part)

    def get_parts(self, job_id: UUID) -> List[JobPart]:
        return list(self.session.exec(select(JobPart).where(JobPart.job_id == job_id)).all())

    def get_checklist(self, job_id: UUID) -> JobChecklistPublic:
        return JobChecklistPublic.model_validate(self._require_checklist(job_id))

    def set_checklist_item(self, job_id: UUID, item_id: str, completed: bool) -> JobChecklistPublic:
        checklist = self._require_checklist(job_id)

        now = datetime.utcnow().isoformat()
        items = []
        found = False
        for item in checklist.items:
            item = dict(item)
            if item["id"] == item_id:
                found = True
                item["completed"] = completed
                item["completed_at"] = now if completed else None
            items.append(item)
        if not found:
            raise NotFoundError(f"Checklist item {item_id} not found on job {job_id}")

        # Reassign so the JSON column is flagged dirty
        checklist.items = items
        checklist.completed_count = sum(1 for item in items if item["completed"])
        checklist.total_count = len(items)
        checklist.updated_at = datetime.utcnow()

        self.session.add(checklist)
        self.session.commit()
        self.session.refresh(checklist)
        return JobChecklistPublic.model_validate(checklist)

    def add_note(self, job_id: UUID, note: JobNoteCreate, offline_fallback: bool = True) -> JobNotePublic:
        try:
            self._require_job(job_id)
            job_note = JobNote(job_id=job_id, **note.model_dump())
            self.session.add(job_note)
            self.session.commit()
            self.session.refresh(job_note)
        except SQLAlchemyError as e:
            self.session.rollback()
            if not offline_fallback:
                raise
            logger.warning("Failed to save note for job %s, queueing: %s", job_id, e)
            action_id = self.store.queue_action("NOTE", note.model_dump(mode="json"), job_id=str(job_id))
            raise OfflineQueuedError("Note saved offline", action_id)
        return JobNotePublic.model_validate(job_note)

    def record_time_entry(
        self,
        job_id: UUID,
        entry: TimeEntryCreate,
        offline_fallback: bool = True,
    ) -> TimeEntryPublic:
        timestamp = entry.timestamp or datetime.utcnow()
        try:
            self._require_job(job_id)
            time_entry = TimeEntry(
                job_id=job_id,
                event=entry.event,
                timestamp=timestamp,
                latitude=entry.latitude,
                longitude=entry.longitude,
                created_by=entry.created_by,
            )
            self.session.add(time_entry)
            self.session.commit()
            self.session.refresh(time_entry)
        except SQLAlchemyError as e:
            self.session.rollback()
            if not offline_fallback:
                raise
            logger.warning("Failed to record %s for job %s, queueing: %s", entry.event, job_id, e)
            # Replayed entries keep the time they were recorded
            payload = entry.model_copy(update={"timestamp": timestamp}).model_dump(mode="json")
            action_id = self.store.queue_action("CHECK", payload, job_id=str(job_id))
            raise OfflineQueuedError(f"{entry.event} saved offline", action_id)
        return TimeEntryPublic.model_validate(time_entry)

    def get_time_entries(self, job_id: UUID) -> List[TimeEntryPublic]:
        self._require_job(job_id)
        entries = self.session.exec(
            select(TimeEntry).where(TimeEntry.job_id == job_id).order_by(TimeEntry.timestamp)
        ).all()
        return [TimeEntryPublic.model_validate(entry) for entry in entries]

    def get_job_visits(self, job_id: UUID) -> List[JobVisit]:
        """Site visits for a job, most recent first."""
        self._require_job(job_id)
        entries = self.session.exec(select(TimeEntry).where(TimeEntry.job_id == job_id)).all()
        return sorted(pair_visits(entries), key=lambda visit: visit.started_at, reverse=True)

    def get_technician_time_entries(
        self,
        technician: str,
        start: datetime,
        end: datetime,
    ) -> List[TechnicianTimeEntry]:
        """Check-ins and check-outs recorded by ``technician`` between ``start`` and ``end``, newest first."""
        rows = self.session.exec(
            select(TimeEntry, Job.title)
            .join(Job, Job.id == TimeEntry.job_id)
            .where(
                TimeEntry.created_by == technician,
                TimeEntry.timestamp >= naive_utc(start),
                TimeEntry.timestamp <= naive_utc(end),
            )
            .order_by(TimeEntry.timestamp.desc())
        ).all()
        return [
            TechnicianTimeEntry.model_validate(entry, update={"job_title": title})
            for entry, title in rows
        ]

    def get_time_tracking_stats(
        self,
        technician: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> TimeTrackingStats:
        """Hours worked and location compliance over completed visits.

        ``average_time_per_job`` is in minutes: total visit time divided by the
        number of distinct jobs visited.
        """
        statement = select(TimeEntry)
        if technician:
            statement = statement.where(TimeEntry.created_by == technician)
        if start:
            statement = statement.where(TimeEntry.timestamp >= naive_utc(start))
        if end:
            statement = statement.where(TimeEntry.timestamp <= naive_utc(end))

        visits = [visit for visit in pair_visits(self.session.exec(statement).all()) if visit.ended_at]
        if not visits:
            return TimeTrackingStats()

        total_minutes = sum(visit.duration_minutes for visit in visits)
        with_location = sum(1 for visit in visits if visit.latitude is not None and visit.longitude is not None)
        jobs = {visit.job_id for visit in visits}
        return TimeTrackingStats(
            total_hours_worked=round(total_minutes / 60, 2),
            location_compliance_rate=round(with_location * 100 / len(visits)),
            average_time_per_job=round(total_minutes / len(jobs), 2),
            total_jobs_tracked=len(jobs),
        )

    def _require_job(self, job_id: UUID) -> Job:
        job = self.session.get(Job, job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def _require_checklist(self, job_id: UUID) -> JobChecklist:
        checklist = self.session.exec(
            select(JobChecklist).where(JobChecklist.job_id == job_id)
        ).first()
        if checklist is None:
            raise NotFoundError(f"Checklist for job {job_id} not found")
        return checklist

    def _cache(self, job: JobPublic) -> None:
        try:
            self.store.put("jobs", job.model_dump(mode="json"))
        except SQLAlchemyError as e:
            self.store.session.rollback()
            logger.warning("Failed to cache job %s: %s", job.id, e)

    def _list_from_cache(
        self,
        technician_id: Optional[UUID],
        status: Optional[str],
        limit: int,
        offset: int,
    ) -> JobListResponse:
        jobs = [JobPublic.model_validate(record) for record in self.store.get_all("jobs")]
        if technician_id:
            jobs = [job for job in jobs if job.technician_id == technician_id]
        if status:
            jobs = [job for job in jobs if job.status == status]
        jobs.sort(key=lambda job: (job.scheduled_date is None, job.scheduled_date or datetime.min, job.job_number))

        return JobListResponse(
            jobs=jobs[offset:offset + limit],
            count=len(jobs),
            limit=limit,
            offset=offset,
            from_cache=True,
        )
