from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlmodel import Session, select

from servicepro.core.errors import InvalidStatusTransitionError, NotFoundError, OfflineQueuedError
from servicepro.models.company import CompanySettings
from servicepro.models.jobs import (
    JobCreate,
    JobNote,
    JobNoteCreate,
    JobPartCreate,
    TimeEntry,
    TimeEntryCreate,
    TimeTrackingStats,
)
from servicepro.services import ConversionService, JobService, OfflineStore
from tests.utils.test_utils import create_approved_quote, create_test_technician


@pytest.fixture
def job(db: Session, store: OfflineStore, company_settings: CompanySettings):
    return JobService(db, store).create_job(JobCreate(title="Boiler service", estimated_cost=Decimal("400")))


class TestJobService:
    """Test cases for JobService."""

    def test_create_job(self, db: Session, store: OfflineStore, job):
        assert job.job_number == "JOB-1000"
        assert job.status == "scheduled"
        assert job.scheduled_date is not None

        checklist = JobService(db, store).get_checklist(job.id)
        assert checklist.items == []
        assert checklist.total_count == 0

    def test_status_flow(self, db: Session, store: OfflineStore, job):
        service = JobService(db, store)

        started = service.update_status(job.id, "in_progress")
        assert started.started_at is not None

        completed = service.update_status(job.id, "completed")
        assert completed.completed_at is not None

        with pytest.raises(InvalidStatusTransitionError):
            service.update_status(job.id, "in_progress")

    def test_scheduled_job_cannot_complete(self, db: Session, store: OfflineStore, job):
        with pytest.raises(InvalidStatusTransitionError):
            JobService(db, store).update_status(job.id, "completed")

    def test_get_job_falls_back_to_cache(self, offline_db: MagicMock, store: OfflineStore, job):
        detail = JobService(offline_db, store).get_job(job.id)

        assert detail.from_cache is True
        assert detail.job.job_number == "JOB-1000"

    def test_get_missing_job(self, db: Session, store: OfflineStore):
        with pytest.raises(NotFoundError):
            JobService(db, store).get_job(uuid4())

    def test_checklist_item_toggle(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        quote = create_approved_quote(db, store)
        job = ConversionService(db, store).convert_quote_to_job(quote.id).job
        service = JobService(db, store)

        checklist = service.set_checklist_item(job.id, "item-1", True)
        assert checklist.completed_count == 1
        assert checklist.items[0].completed is True
        assert checklist.items[0].completed_at is not None

        checklist = service.set_checklist_item(job.id, "item-1", False)
        assert checklist.completed_count == 0
        assert checklist.items[0].completed_at is None

        with pytest.raises(NotFoundError):
            service.set_checklist_item(job.id, "item-99", True)

    def test_add_part(self, db: Session, store: OfflineStore, job):
        service = JobService(db, store)

        part = service.add_part(job.id, JobPartCreate(name="Valve", unit_cost=Decimal("35.50"), quantity_used=Decimal("2")))

        assert part.job_id == job.id
        assert [p.name for p in service.get_parts(job.id)] == ["Valve"]

    def test_add_note(self, db: Session, store: OfflineStore, job):
        note = JobService(db, store).add_note(job.id, JobNoteCreate(text="Customer not home", created_by="tech-1"))

        assert note.text == "Customer not home"
        assert len(db.exec(select(JobNote)).all()) == 1

    def test_add_note_offline_is_queued(self, offline_db: MagicMock, store: OfflineStore):
        job_id = uuid4()

        with pytest.raises(OfflineQueuedError) as exc_info:
            JobService(offline_db, store).add_note(job_id, JobNoteCreate(text="Left a card"))

        item = store.get_action(exc_info.value.action_id)
        assert item.type == "NOTE"
        assert item.job_id == str(job_id)
        assert item.payload == {"text": "Left a card", "created_by": None}

    def test_record_time_entry(self, db: Session, store: OfflineStore, job):
        at = datetime(2024, 6, 1, 9, 15)

        entry = JobService(db, store).record_time_entry(job.id, TimeEntryCreate(event="check_in", timestamp=at))

        assert entry.timestamp == at
        assert len(db.exec(select(TimeEntry)).all()) == 1

    def test_offline_time_entry_keeps_timestamp(self, offline_db: MagicMock, store: OfflineStore):
        with pytest.raises(OfflineQueuedError) as exc_info:
            JobService(offline_db, store).record_time_entry(uuid4(), TimeEntryCreate(event="check_out"))

        item = store.get_action(exc_info.value.action_id)
        assert item.type == "CHECK"
        assert item.payload["event"] == "check_out"
        assert item.payload["timestamp"] is not None


def check(service: JobService, job_id, event: str, at: datetime, who: str = "tech-1", located: bool = True):
    location = {"latitude": 24.7136, "longitude": 46.6753} if located else {}
    return service.record_time_entry(
        job_id, TimeEntryCreate(event=event, timestamp=at, created_by=who, **location)
    )


class TestJobList:
    """Test cases for listing jobs."""

    def test_list_jobs(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        technician = create_test_technician(db)
        service = JobService(db, store)
        late = service.create_job(JobCreate(title="Duct cleaning", scheduled_date=datetime(2024, 6, 3, 9)))
        early = service.create_job(
            JobCreate(title="Boiler service", technician_id=technician.id, scheduled_date=datetime(2024, 6, 1, 9))
        )
        middle = service.create_job(
            JobCreate(title="Thermostat swap", technician_id=technician.id, scheduled_date=datetime(2024, 6, 2, 9))
        )
        service.update_status(middle.id, "in_progress")

        result = service.list_jobs()
        assert result.from_cache is False
        assert result.count == 3
        assert [job.id for job in result.jobs] == [early.id, middle.id, late.id]

        assert [job.id for job in service.list_jobs(technician_id=technician.id).jobs] == [early.id, middle.id]
        assert [job.id for job in service.list_jobs(status="in_progress").jobs] == [middle.id]

        page = service.list_jobs(limit=1, offset=1)
        assert page.count == 3
        assert [job.id for job in page.jobs] == [middle.id]

    def test_list_falls_back_to_cache(
        self,
        db: Session,
        offline_db: MagicMock,
        store: OfflineStore,
        company_settings: CompanySettings,
    ):
        technician = create_test_technician(db)
        service = JobService(db, store)
        second = service.create_job(
            JobCreate(title="Thermostat swap", technician_id=technician.id, scheduled_date=datetime(2024, 6, 2, 9))
        )
        first = service.create_job(
            JobCreate(title="Boiler service", technician_id=technician.id, scheduled_date=datetime(2024, 6, 1, 9))
        )
        service.create_job(JobCreate(title="Duct cleaning", scheduled_date=datetime(2024, 6, 3, 9)))

        result = JobService(offline_db, store).list_jobs(technician_id=technician.id)

        assert result.from_cache is True
        assert result.count == 2
        assert [job.id for job in result.jobs] == [first.id, second.id]
        assert JobService(offline_db, store).list_jobs(status="completed").count == 0


class TestTimeTracking:
    """Test cases for time entry reports."""

    def test_get_time_entries(self, db: Session, store: OfflineStore, job):
        service = JobService(db, store)
        check(service, job.id, "check_out", datetime(2024, 6, 1, 10, 30))
        check(service, job.id, "check_in", datetime(2024, 6, 1, 9, 0))

        entries = service.get_time_entries(job.id)

        assert [entry.event for entry in entries] == ["check_in", "check_out"]

    def test_job_visits(self, db: Session, store: OfflineStore, job):
        service = JobService(db, store)
        check(service, job.id, "check_in", datetime(2024, 6, 1, 9, 0))
        check(service, job.id, "check_out", datetime(2024, 6, 1, 10, 30))
        check(service, job.id, "check_in", datetime(2024, 6, 1, 13, 0), located=False)

        visits = service.get_job_visits(job.id)

        assert len(visits) == 2
        assert visits[0].started_at == datetime(2024, 6, 1, 13, 0)
        assert visits[0].ended_at is None
        assert visits[0].latitude is None
        assert visits[1].started_at == datetime(2024, 6, 1, 9, 0)
        assert visits[1].ended_at == datetime(2024, 6, 1, 10, 30)
        assert visits[1].duration_minutes == 90
        assert visits[1].technician == "tech-1"

    def test_visits_for_missing_job(self, db: Session, store: OfflineStore):
        with pytest.raises(NotFoundError):
            JobService(db, store).get_job_visits(uuid4())

    def test_technician_time_entries(self, db: Session, store: OfflineStore, job):
        service = JobService(db, store)
        other = service.create_job(JobCreate(title="Duct cleaning"))
        check(service, job.id, "check_in", datetime(2024, 6, 1, 9, 0))
        check(service, other.id, "check_in", datetime(2024, 6, 2, 9, 0))
        check(service, other.id, "check_in", datetime(2024, 6, 2, 9, 5), who="tech-2")
        check(service, job.id, "check_in", datetime(2024, 7, 1, 9, 0))

        entries = service.get_technician_time_entries(
            "tech-1", datetime(2024, 6, 1), datetime(2024, 6, 30, 23, 59)
        )

        assert [(entry.job_title, entry.timestamp) for entry in entries] == [
            ("Duct cleaning", datetime(2024, 6, 2, 9, 0)),
            ("Boiler service", datetime(2024, 6, 1, 9, 0)),
        ]

    def test_time_tracking_stats(self, db: Session, store: OfflineStore, job):
        service = JobService(db, store)
        other = service.create_job(JobCreate(title="Duct cleaning"))
        day = datetime(2024, 6, 1)
        check(service, job.id, "check_in", day + timedelta(hours=9))
        check(service, job.id, "check_out", day + timedelta(hours=10, minutes=30))
        check(service, job.id, "check_in", day + timedelta(hours=13), located=False)
        check(service, job.id, "check_out", day + timedelta(hours=13, minutes=30))
        check(service, other.id, "check_out", day + timedelta(hours=7))
        check(service, other.id, "check_in", day + timedelta(hours=8))
        check(service, other.id, "check_out", day + timedelta(hours=9))

        stats = service.get_time_tracking_stats("tech-1")

        assert stats.total_hours_worked == 3.0
        assert stats.location_compliance_rate == 67
        assert stats.average_time_per_job == 90.0
        assert stats.total_jobs_tracked == 2

        assert service.get_time_tracking_stats("tech-2") == TimeTrackingStats()
        morning = service.get_time_tracking_stats(start=day, end=day + timedelta(hours=12))
        assert morning.total_hours_worked == 2.5
        assert morning.total_jobs_tracked == 2
