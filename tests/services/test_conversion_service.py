from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from servicepro.core.errors import ConversionError, NotFoundError
from servicepro.models.company import CompanySettings
from servicepro.models.jobs import Job, JobChecklist
from servicepro.models.quotes import Quote, QuoteApproval, QuotePublic
from servicepro.services import ConversionService, OfflineStore, QuoteService
from tests.utils.test_utils import (
    create_approved_quote,
    create_test_customer,
    create_test_quote,
    create_test_technician,
)


def quote_in_status(db: Session, store: OfflineStore, status: str) -> QuotePublic:
    service = QuoteService(db, store)
    quote = create_test_quote(db, store, valid_until="2030-01-31")
    if status == "draft":
        return quote
    service.send_quote(quote.id)
    if status == "viewed":
        service.mark_viewed(quote.id)
    elif status == "declined":
        service.decline_quote(quote.id, "Too expensive")
    elif status == "expired":
        service.expire_quotes(as_of=date(2030, 2, 1))
    return quote


class TestConversionService:
    """Test cases for quote to job conversion."""

    def test_convert_approved_quote(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        customer = create_test_customer(db)
        technician = create_test_technician(db)
        quote = create_approved_quote(db, store, customer_id=customer.id)
        scheduled = datetime(2024, 6, 1, 9, 0)

        result = ConversionService(db, store).convert_quote_to_job(
            quote.id, technician_id=technician.id, scheduled_date=scheduled
        )

        assert result.quote.status == "converted"
        assert result.quote.converted_to_job_id == result.job.id
        assert result.quote.converted_to_job_at is not None

        job = result.job
        assert job.job_number == "JOB-1000"
        assert job.status == "scheduled"
        assert job.title == quote.title
        assert job.customer_id == customer.id
        assert job.technician_id == technician.id
        assert job.quote_id == quote.id
        assert job.scheduled_date == scheduled
        assert job.estimated_cost == Decimal("1265.00")

        checklist = result.checklist
        assert checklist.template_name == "Quote #QUO-1000 Checklist"
        assert checklist.total_count == 2
        assert checklist.completed_count == 0
        assert [(item.id, item.text, item.required) for item in checklist.items] == [
            ("item-1", "Install AC - Service", True),
            ("item-2", "Filter - Part", False),
        ]

    def test_checklist_from_mixed_items(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        items = [
            {"item_type": "service", "name": "Remove old unit", "quantity": "1", "unit_price": "200.00"},
            {"item_type": "service", "name": "Install AC", "quantity": "1", "unit_price": "1000.00"},
            {"item_type": "part", "name": "Copper pipe", "quantity": "3", "unit_price": "40.00"},
        ]
        service = QuoteService(db, store)
        quote = create_test_quote(db, store, items=items)
        service.send_quote(quote.id)
        service.approve_quote(quote.id, QuoteApproval(signature_data="sig"))

        result = ConversionService(db, store).convert_quote_to_job(quote.id)

        checklist = result.checklist
        assert checklist.total_count == 3
        assert sum(1 for item in checklist.items if item.required) == 2
        assert [(item.text, item.required, item.completed) for item in checklist.items] == [
            ("Remove old unit - Service", True, False),
            ("Install AC - Service", True, False),
            ("Copper pipe - Part", False, False),
        ]
        assert result.quote.status == "converted"

    def test_conversion_is_cached(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        quote = create_approved_quote(db, store)

        result = ConversionService(db, store).convert_quote_to_job(quote.id)

        assert store.get("quotes", str(quote.id))["status"] == "converted"
        assert store.get("jobs", str(result.job.id))["job_number"] == "JOB-1000"

    @pytest.mark.parametrize("status", ["draft", "sent", "viewed", "declined", "expired"])
    def test_unapproved_quote_is_rejected(
        self, db: Session, store: OfflineStore, company_settings: CompanySettings, status: str
    ):
        quote = quote_in_status(db, store, status)
        assert db.get(Quote, quote.id).status == status

        with pytest.raises(ConversionError) as exc_info:
            ConversionService(db, store).convert_quote_to_job(quote.id)

        assert exc_info.value.message == "Quote must be approved before conversion"
        assert db.exec(select(Job)).all() == []
        assert db.exec(select(JobChecklist)).all() == []
        assert db.get(CompanySettings, company_settings.id).next_job_number == 1000

    def test_converted_quote_cannot_convert_again(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        quote = create_approved_quote(db, store)
        service = ConversionService(db, store)
        service.convert_quote_to_job(quote.id)

        with pytest.raises(ConversionError):
            service.convert_quote_to_job(quote.id)
        assert len(db.exec(select(Job)).all()) == 1

    def test_missing_quote(self, db: Session, company_settings: CompanySettings):
        with pytest.raises(NotFoundError):
            ConversionService(db).convert_quote_to_job(uuid4())

    def test_failed_commit_leaves_nothing_behind(self, db: Session, store: OfflineStore, company_settings: CompanySettings):
        quote = create_approved_quote(db, store)
        failure = OperationalError("COMMIT", {}, Exception("connection lost"))

        with patch.object(db, "commit", side_effect=failure):
            with pytest.raises(ConversionError):
                ConversionService(db, store).convert_quote_to_job(quote.id)

        assert db.exec(select(Job)).all() == []
        assert db.exec(select(JobChecklist)).all() == []
        assert db.get(Quote, quote.id).status == "approved"
        assert db.get(CompanySettings, company_settings.id).next_job_number == 1000
