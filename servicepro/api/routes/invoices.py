"""Invoices API endpoints."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from servicepro.api.deps import get_db, get_offline_store, http_error
from servicepro.core.errors import ServiceProError
from servicepro.models.invoices import (
    InvoiceCreate,
    InvoiceGenerationResult,
    InvoicePublic,
    InvoiceQrResponse,
    InvoiceStatusUpdate,
)
from servicepro.services import InvoiceService, OfflineStore

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/", response_model=InvoiceGenerationResult, status_code=201)
def generate_invoice(
    request: InvoiceCreate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Generate an invoice from a completed job.
    """
    try:
        return InvoiceService(session, store).generate_invoice_from_job(request)
    except ServiceProError as e:
        raise http_error(e)


@router.get("/", response_model=List[InvoicePublic])
def list_invoices(
    status: Optional[str] = None,
    job_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    session: Session = Depends(get_db)
):
    return InvoiceService(session).list_invoices(status, job_id, date_from, date_to)


@router.get("/{invoice_id}", response_model=InvoicePublic)
def get_invoice(invoice_id: UUID, session: Session = Depends(get_db)):
    try:
        return InvoiceService(session).get_invoice(invoice_id)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{invoice_id}/status", response_model=InvoicePublic)
def update_invoice_status(
    invoice_id: UUID,
    update: InvoiceStatusUpdate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return InvoiceService(session, store).update_status(
            invoice_id, update.status, update.payment_reference
        )
    except ServiceProError as e:
        raise http_error(e)


@router.delete("/{invoice_id}", status_code=204)
def delete_invoice(
    invoice_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Delete a draft invoice and its items.
    """
    try:
        InvoiceService(session, store).delete_invoice(invoice_id)
    except ServiceProError as e:
        raise http_error(e)
    return Response(status_code=204)


@router.get("/{invoice_id}/qr", response_model=InvoiceQrResponse)
def get_invoice_qr(invoice_id: UUID, session: Session = Depends(get_db)):
    """
    Return the stored ZATCA QR payload and its decoded fields.
    """
    try:
        return InvoiceService(session).describe_qr(invoice_id)
    except ServiceProError as e:
        raise http_error(e)
