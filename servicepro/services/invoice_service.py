"""Invoice generation from completed jobs, plus invoice management."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from servicepro.core.config import settings
from servicepro.core.errors import (
    ConflictError,
    InvalidStatusTransitionError,
    InvoiceGenerationError,
    NotFoundError,
    ValidationError,
)
from servicepro.models.company import CompanySettingsPublic
from servicepro.models.domain import Customer, Technician
from servicepro.models.invoices import (
    Invoice,
    InvoiceCreate,
    InvoiceGenerationResult,
    InvoiceItem,
    InvoiceItemPublic,
    InvoicePublic,
    InvoiceQrResponse,
    InvoiceStatus,
)
from servicepro.models.jobs import Job, JobChecklist, JobPart, JobStatus
from servicepro.services import money
from servicepro.services.company_service import CompanySettingsService
from servicepro.services.offline_store import OfflineStore
from servicepro.services.sequence_service import SequenceService
from servicepro.services.zatca import build_invoice_qr, decode_invoice_qr

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    InvoiceStatus.DRAFT.value: {InvoiceStatus.SENT.value, InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value},
    InvoiceStatus.SENT.value: {InvoiceStatus.PAID.value, InvoiceStatus.OVERDUE.value, InvoiceStatus.CANCELLED.value},
    InvoiceStatus.OVERDUE.value: {InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value},
}


class InvoiceService:
    """Generates invoices as immutable snapshots of a completed job."""

    def __init__(self, session: Session, store: Optional[OfflineStore] = None):
        self.session = session
        self.store = store

    def generate_invoice_from_job(self, request: InvoiceCreate) -> InvoiceGenerationResult:
        """Create an invoice, its lines and the ZATCA QR code for a completed job.

        Labor is billed per completed required checklist item at
        ``estimated_cost * LABOR_SHARE_OF_ESTIMATE / required items`` (or
        ``DEFAULT_LABOR_RATE`` without an estimate); parts at unit cost times
        quantity used; additional charges as their own line. VAT applies to
        the subtotal after discount.
        """
        job = self.session.get(Job, request.job_id)
        if job is None:
            raise NotFoundError(f"Job {request.job_id} not found")
        if job.status != JobStatus.COMPLETED.value:
            raise InvoiceGenerationError("Can only generate invoices for completed jobs")

        company_settings = CompanySettingsService(self.session).require_settings()

        existing = self.session.exec(
            select(Invoice).where(
                Invoice.job_id == job.id,
                Invoice.status != InvoiceStatus.CANCELLED.value,
            )
        ).first()
        if existing is not None:
            raise InvoiceGenerationError(
                f"Job {job.job_number} already has invoice {existing.invoice_number}"
            )

        lines = self._build_lines(job, request.additional_charges)
        labor_minor = sum(money.to_minor(line.total_price) for line in lines if line.item_type == "service")
        parts_minor = sum(money.to_minor(line.total_price) for line in lines if line.item_type == "parts")
        subtotal_minor = labor_minor + parts_minor + money.to_minor(request.additional_charges)
        if money.to_minor(request.discount_amount) > subtotal_minor:
            raise ValidationError("Discount cannot exceed the invoice subtotal")

        vat_rate = company_settings.default_vat_rate
        if vat_rate is None:
            vat_rate = settings.DEFAULT_VAT_RATE
        totals = money.calculate_totals(money.from_minor(subtotal_minor), request.discount_amount, vat_rate)

        due_days = settings.DEFAULT_DUE_DAYS if request.due_days is None else request.due_days
        customer = self.session.get(Customer, job.customer_id) if job.customer_id else None
        technician = self.session.get(Technician, job.technician_id) if job.technician_id else None
        issued = datetime.utcnow()

        try:
            invoice_number = SequenceService(self.session).next_number("invoice")
            invoice = Invoice(
                job_id=job.id,
                quote_id=job.quote_id,
                invoice_number=invoice_number,
                status=InvoiceStatus.DRAFT.value,
                customer_name=customer.name if customer else None,
                customer_email=customer.email if customer else None,
                customer_address=customer.address if customer else None,
                customer_phone=(customer.phone_mobile or customer.phone_work) if customer else None,
                customer_type=customer.customer_type if customer else None,
                job_title=job.title,
                job_description=job.description,
                service_date=job.scheduled_date,
                completion_date=job.completed_at,
                technician_name=technician.full_name if technician else None,
                labor_cost=money.from_minor(labor_minor),
                parts_cost=money.from_minor(parts_minor),
                additional_charges=request.additional_charges,
                subtotal=totals.subtotal,
                vat_rate=vat_rate,
                vat_amount=totals.tax_amount,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
                commercial_registration=company_settings.commercial_registration,
                vat_registration_number=company_settings.vat_number,
                payment_terms=request.payment_terms or f"Net {due_days} days",
                notes=request.notes,
                issued_date=issued,
                due_date=issued + timedelta(days=due_days),
                created_by=request.created_by or "system",
            )
            self.session.add(invoice)
            self.session.flush()

            for line in lines:
                line.invoice_id = invoice.id
                self.session.add(line)

            if company_settings.is_zatca_enabled:
                invoice.zatca_qr_code = build_invoice_qr(invoice, company_settings, settings.ZATCA_QR_FORMAT)
                self.session.add(invoice)

            self.session.commit()
        except (SQLAlchemyError, ValueError) as e:
            self.session.rollback()
            logger.error("Invoice generation failed for job %s: %s", request.job_id, e)
            raise InvoiceGenerationError(f"Failed to generate invoice: {e}") from e

        self.session.refresh(invoice)
        items = self._get_items(invoice.id)
        result = InvoiceGenerationResult(
            invoice=InvoicePublic.model_validate(invoice),
            invoice_items=[InvoiceItemPublic.model_validate(item) for item in items],
            company_settings=CompanySettingsPublic.model_validate(company_settings),
            zatca_qr_code=invoice.zatca_qr_code,
        )
        logger.info("Generated invoice %s for job %s", invoice.invoice_number, job.job_number)
        self._cache(result.invoice)
        return result

    def get_invoice(self, invoice_id: UUID) -> InvoicePublic:
        return InvoicePublic.model_validate(self._require_invoice(invoice_id))

    def get_invoice_items(self, invoice_id: UUID) -> List[InvoiceItemPublic]:
        self._require_invoice(invoice_id)
        return [InvoiceItemPublic.model_validate(item) for item in self._get_items(invoice_id)]

    def list_invoices(
        self,
        status: Optional[str] = None,
        job_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[InvoicePublic]:
        statement = select(Invoice)
        if status:
            statement = statement.where(Invoice.status == status)
        if job_id:
            statement = statement.where(Invoice.job_id == job_id)
        if date_from:
            statement = statement.where(Invoice.issued_date >= date_from)
        if date_to:
            statement = statement.where(Invoice.issued_date <= date_to)
        invoices = self.session.exec(statement.order_by(Invoice.issued_date.desc())).all()
        return [InvoicePublic.model_validate(invoice) for invoice in invoices]

    def update_status(
        self,
        invoice_id: UUID,
        status: str,
        payment_reference: Optional[str] = None,
    ) -> InvoicePublic:
        """Move an invoice along its lifecycle; financial fields never change."""
        invoice = self._require_invoice(invoice_id)
        if status not in ALLOWED_TRANSITIONS.get(invoice.status, set()):
            raise InvalidStatusTransitionError("invoice", invoice.status, status)

        now = datetime.utcnow()
        invoice.status = status
        if status == InvoiceStatus.PAID.value:
            invoice.paid_date = now
            if payment_reference:
                invoice.payment_reference = payment_reference
        invoice.updated_at = now

        self.session.add(invoice)
        self.session.commit()
        self.session.refresh(invoice)

        public = InvoicePublic.model_validate(invoice)
        self._cache(public)
        return public

    def delete_invoice(self, invoice_id: UUID) -> None:
        invoice = self._require_invoice(invoice_id)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise ConflictError("Only draft invoices can be deleted")

        for item in self._get_items(invoice_id):
            self.session.delete(item)
        self.session.flush()
        self.session.delete(invoice)
        self.session.commit()

        if self.store is not None:
            self.store.delete("invoices", str(invoice_id))
        logger.info("Deleted invoice %s", invoice.invoice_number)

    def describe_qr(self, invoice_id: UUID) -> InvoiceQrResponse:
        invoice = self._require_invoice(invoice_id)
        if not invoice.zatca_qr_code:
            raise NotFoundError(f"Invoice {invoice.invoice_number} has no ZATCA QR code")
        fmt, fields = decode_invoice_qr(invoice.zatca_qr_code)
        return InvoiceQrResponse(
            invoice_id=invoice.id,
            payload=invoice.zatca_qr_code,
            format=fmt,
            fields=fields,
        )

    def _build_lines(self, job: Job, additional_charges) -> List[InvoiceItem]:
        lines: List[InvoiceItem] = []

        checklist = self.session.exec(
            select(JobChecklist).where(JobChecklist.job_id == job.id)
        ).first()
        checklist_items = checklist.items if checklist else []
        required_count = sum(1 for item in checklist_items if item.get("required"))

        if job.estimated_cost and required_count:
            labor_rate_minor = money.divide(
                money.apply_rate(money.to_minor(job.estimated_cost), settings.LABOR_SHARE_OF_ESTIMATE),
                required_count,
            )
        else:
            labor_rate_minor = money.to_minor(settings.DEFAULT_LABOR_RATE)
        labor_rate = money.from_minor(labor_rate_minor)

        for item in checklist_items:
            if item.get("completed") and item.get("required"):
                lines.append(InvoiceItem(
                    description=item.get("text") or "Service Item",
                    quantity=1,
                    unit_price=labor_rate,
                    total_price=labor_rate,
                    item_type="service",
                    job_checklist_item_id=item.get("id"),
                    sort_order=len(lines) + 1,
                ))

        parts = self.session.exec(select(JobPart).where(JobPart.job_id == job.id)).all()
        for part in parts:
            lines.append(InvoiceItem(
                description=part.name or "Parts",
                quantity=part.quantity_used,
                unit_price=part.unit_cost,
                total_price=money.line_total(part.quantity_used, part.unit_cost),
                item_type="parts",
                sort_order=len(lines) + 1,
            ))

        if money.to_minor(additional_charges) > 0:
            lines.append(InvoiceItem(
                description="Additional Charges",
                quantity=1,
                unit_price=additional_charges,
                total_price=money.from_minor(money.to_minor(additional_charges)),
                item_type="additional",
                sort_order=len(lines) + 1,
            ))

        return lines

    def _get_items(self, invoice_id: UUID) -> List[InvoiceItem]:
        return list(self.session.exec(
            select(InvoiceItem)
            .where(InvoiceItem.invoice_id == invoice_id)
            .order_by(InvoiceItem.sort_order)
        ).all())

    def _require_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def _cache(self, invoice: InvoicePublic) -> None:
        if self.store is None:
            return
        try:
            self.store.put("invoices", invoice.model_dump(mode="json"))
        except SQLAlchemyError as e:
            self.store.session.rollback()
            logger.warning("Failed to cache invoice %s: %s", invoice.id, e)
