"""Document number allocation for quotes, invoices and jobs."""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from servicepro.core.config import settings
from servicepro.core.errors import SequenceAllocationError
from servicepro.models.company import CompanySettings
from servicepro.models.invoices import Invoice
from servicepro.models.jobs import Job
from servicepro.models.quotes import Quote
from servicepro.services.company_service import CompanySettingsService

logger = logging.getLogger(__name__)

# doc type -> (prefix field, counter field, numbered column)
DOCUMENT_TYPES = {
    "quote": ("quote_number_prefix", "next_quote_number", Quote.quote_number),
    "invoice": ("invoice_number_prefix", "next_invoice_number", Invoice.invoice_number),
    "job": ("job_number_prefix", "next_job_number", Job.job_number),
}


def format_number(prefix: str, sequence: int, pad: Optional[int] = None) -> str:
    width = settings.DOCUMENT_NUMBER_PAD if pad is None else pad
    return f"{prefix}{sequence:0{width}d}"


def parse_number(prefix: str, number: str) -> Optional[int]:
    suffix = number[len(prefix):] if number.startswith(prefix) else ""
    return int(suffix) if suffix.isdigit() else None


class SequenceService:
    """Allocates the next document number from the company settings counters.

    The counter is advanced with a compare-and-swap update, so two writers
    that read the same counter cannot both succeed; the loser re-reads and
    tries again. Nothing is committed here: the counter update belongs to
    the caller's transaction and is rolled back with it.
    """

    def __init__(self, session: Session):
        self.session = session
        self.settings_service = CompanySettingsService(session)

    def next_number(self, doc_type: str) -> str:
        if doc_type not in DOCUMENT_TYPES:
            raise ValueError(f"Unknown document type: {doc_type}")
        prefix_field, counter_field, column = DOCUMENT_TYPES[doc_type]

        for attempt in range(1, settings.SEQUENCE_MAX_ATTEMPTS + 1):
            company = self.settings_service.require_settings(refresh=True)
            prefix = getattr(company, prefix_field)
            counter = getattr(company, counter_field)

            sequence = counter
            try:
                # A failed lookup must not abort the transaction the counter update runs in
                with self.session.begin_nested():
                    highest = self._highest_existing(column, prefix)
            except SQLAlchemyError as e:
                logger.warning("Error checking existing %s numbers, using counter: %s", doc_type, e)
                highest = None
            if highest is not None:
                sequence = max(highest + 1, counter)

            result = self.session.exec(
                update(CompanySettings)
                .where(
                    CompanySettings.id == company.id,
                    getattr(CompanySettings, counter_field) == counter,
                )
                .values({counter_field: sequence + 1, "updated_at": datetime.utcnow()})
            )
            if result.rowcount == 1:
                number = format_number(prefix, sequence)
                logger.info("Generated %s number %s", doc_type, number)
                return number

            logger.info("%s counter moved during allocation (attempt %d), retrying", doc_type, attempt)

        raise SequenceAllocationError(
            f"Could not allocate a {doc_type} number after {settings.SEQUENCE_MAX_ATTEMPTS} attempts"
        )

    def _highest_existing(self, column, prefix: str) -> Optional[int]:
        # Longer numbers sort first so QUO-10000 ranks above QUO-9999
        numbers = self.session.exec(
            select(column)
            .where(column.like(f"{prefix}%"))
            .order_by(func.length(column).desc(), column.desc())
            .limit(50)
        ).all()
        for number in numbers:
            parsed = parse_number(prefix, number)
            if parsed is not None:
                return parsed
        return None
