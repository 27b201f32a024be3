"""Quote to job conversion."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from servicepro.core.errors import ConversionError, NotFoundError, ServiceProError
from servicepro.models.jobs import (
    ConversionResult,
    Job,
    JobChecklist,
    JobChecklistPublic,
    JobPublic,
    JobStatus,
)
from servicepro.models.quotes import Quote, QuoteItem, QuotePublic, QuoteStatus
from servicepro.services.offline_store import OfflineStore
from servicepro.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)


def checklist_items_from_quote(items: List[QuoteItem]) -> List[Dict[str, Any]]:
    """One checklist entry per quote line; service lines are required."""
    return [
        {
            "id": f"item-{index + 1}",
            "text": f"{item.description or item.name} - {item.item_type.capitalize()}",
            "required": item.item_type == "service",
            "completed": False,
            "completed_at": None,
        }
        for index, item in enumerate(items)
    ]


class ConversionService:
    """Turns an approved quote into a scheduled job with its checklist.

    Job, checklist and quote status change are written in a single
    transaction: either all three land or none do.
    """

    def __init__(self, session: Session, store: Optional[OfflineStore] = None):
        self.session = session
        self.store = store

    def convert_quote_to_job(
        self,
        quote_id: UUID,
        technician_id: Optional[UUID] = None,
        scheduled_date: Optional[datetime] = None,
    ) -> ConversionResult:
        quote = self.session.get(Quote, quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        if quote.status != QuoteStatus.APPROVED.value:
            raise ConversionError("Quote must be approved before conversion")

        now = datetime.utcnow()
        try:
            job_number = SequenceService(self.session).next_number("job")

            job = Job(
                job_number=job_number,
                title=quote.title,
                description=quote.description,
                customer_id=quote.customer_id,
                technician_id=technician_id,
                quote_id=quote.id,
                status=JobStatus.SCHEDULED.value,
                scheduled_date=scheduled_date or now,
                estimated_cost=quote.total_amount,
                quote_converted_at=now,
            )
            self.session.add(job)
            self.session.flush()

            items = checklist_items_from_quote(quote.items)
            checklist = JobChecklist(
                job_id=job.id,
                template_name=f"Quote #{quote.quote_number} Checklist",
                items=items,
                completed_count=0,
                total_count=len(items),
            )
            self.session.add(checklist)

            quote.status = QuoteStatus.CONVERTED.value
            quote.converted_to_job_id = job.id
            quote.converted_to_job_at = now
            quote.updated_at = now
            self.session.add(quote)

            self.session.commit()
        except (SQLAlchemyError, ServiceProError) as e:
            self.session.rollback()
            logger.error("Quote to job conversion failed for %s: %s", quote_id, e)
            raise ConversionError(f"Failed to convert quote to job: {e}") from e

        self.session.refresh(quote)
        self.session.refresh(job)
        self.session.refresh(checklist)
        result = ConversionResult(
            quote=QuotePublic.model_validate(quote),
            job=JobPublic.model_validate(job),
            checklist=JobChecklistPublic.model_validate(checklist),
        )
        logger.info("Converted quote %s to job %s", quote.quote_number, job.job_number)

        if self.store is not None:
            self._cache(result)
        return result

    def _cache(self, result: ConversionResult) -> None:
        try:
            self.store.put("quotes", result.quote.model_dump(mode="json"))
            self.store.put("jobs", result.job.model_dump(mode="json"))
        except SQLAlchemyError as e:
            self.store.session.rollback()
            logger.warning("Failed to cache conversion result: %s", e)
