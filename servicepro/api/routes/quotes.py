"""Quotes API endpoints."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlmodel import Session

from servicepro.api.deps import get_db, get_offline_store, http_error, queued_response
from servicepro.core.errors import OfflineQueuedError, ServiceProError
from servicepro.models.jobs import ConversionResult, QuoteConversionRequest
from servicepro.models.quotes import (
    QuoteApproval,
    QuoteCreate,
    QuoteDecline,
    QuoteDetailResponse,
    QuoteFilters,
    QuoteListResponse,
    QuotePublic,
    QuoteStatistics,
    QuoteUpdate,
)
from servicepro.services import ConversionService, OfflineStore, QuoteService

router = APIRouter(prefix="/quotes", tags=["quotes"])
public_router = APIRouter(prefix="/public/quotes", tags=["public"])


@router.get("/", response_model=QuoteListResponse)
def list_quotes(
    status: Optional[List[str]] = Query(default=None),
    customer_id: Optional[UUID] = None,
    created_by: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    amount_min: Optional[Decimal] = None,
    amount_max: Optional[Decimal] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, le=100),
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
) -> QuoteListResponse:
    """
    List quotes with filters, sorting and pagination. Falls back to the local cache.
    """
    filters = QuoteFilters(
        status=status,
        customer_id=customer_id,
        created_by=created_by,
        date_from=date_from,
        date_to=date_to,
        amount_min=amount_min,
        amount_max=amount_max,
        search_term=search,
    )
    try:
        return QuoteService(session, store).list_quotes(filters, sort_by, sort_order, page, per_page)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/", response_model=QuotePublic, status_code=201)
def create_quote(
    request: QuoteCreate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Create a quote. Without a server connection an offline draft is returned.
    """
    try:
        return QuoteService(session, store).create_quote(request)
    except ServiceProError as e:
        raise http_error(e)


@router.get("/statistics", response_model=QuoteStatistics)
def get_quote_statistics(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    return QuoteService(session, store).get_statistics(date_from, date_to)


@router.post("/expire", response_model=List[QuotePublic])
def expire_quotes(
    as_of: Optional[date] = None,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Expire sent or viewed quotes past their validity date.
    """
    return QuoteService(session, store).expire_quotes(as_of)


@router.get("/{quote_id}", response_model=QuoteDetailResponse)
def get_quote(
    quote_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return QuoteService(session, store).get_quote(quote_id)
    except ServiceProError as e:
        raise http_error(e)


@router.patch("/{quote_id}", response_model=QuotePublic)
def update_quote(
    quote_id: UUID,
    changes: QuoteUpdate,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Edit a quote. Supplying ``items`` replaces every line item.
    """
    try:
        return QuoteService(session, store).update_quote(quote_id, changes)
    except OfflineQueuedError as e:
        return queued_response(e)
    except ServiceProError as e:
        raise http_error(e)


@router.delete("/{quote_id}", status_code=204)
def delete_quote(
    quote_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        QuoteService(session, store).delete_quote(quote_id)
    except ServiceProError as e:
        raise http_error(e)
    return Response(status_code=204)


@router.post("/{quote_id}/send", response_model=QuotePublic)
def send_quote(
    quote_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return QuoteService(session, store).send_quote(quote_id)
    except OfflineQueuedError as e:
        return queued_response(e)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{quote_id}/approve", response_model=QuotePublic)
def approve_quote(
    quote_id: UUID,
    approval: QuoteApproval,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Record customer approval together with their signature.
    """
    try:
        return QuoteService(session, store).approve_quote(quote_id, approval)
    except OfflineQueuedError as e:
        return queued_response(e)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{quote_id}/decline", response_model=QuotePublic)
def decline_quote(
    quote_id: UUID,
    decline: QuoteDecline,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    try:
        return QuoteService(session, store).decline_quote(quote_id, decline.reason)
    except OfflineQueuedError as e:
        return queued_response(e)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/{quote_id}/convert", response_model=ConversionResult, status_code=201)
def convert_quote(
    quote_id: UUID,
    request: Optional[QuoteConversionRequest] = None,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Convert an approved quote into a scheduled job with a checklist.
    """
    request = request or QuoteConversionRequest()
    try:
        return ConversionService(session, store).convert_quote_to_job(
            quote_id,
            technician_id=request.technician_id,
            scheduled_date=request.scheduled_date,
        )
    except ServiceProError as e:
        raise http_error(e)


@public_router.get("/{quote_id}", response_model=QuotePublic)
def get_public_quote(
    quote_id: UUID,
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Customer view of a quote. Opening a sent quote marks it as viewed.
    """
    try:
        return QuoteService(session, store).get_public_quote(quote_id)
    except ServiceProError as e:
        raise http_error(e)
