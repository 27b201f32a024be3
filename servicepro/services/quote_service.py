"""Quote aggregate service: CRUD, lifecycle and statistics."""

import logging
import math
import time
from collections import Counter
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from servicepro.core.errors import (
    ConflictError,
    InvalidStatusTransitionError,
    NotFoundError,
    OfflineQueuedError,
    ValidationError,
)
from servicepro.models.quotes import (
    Quote,
    QuoteApproval,
    QuoteCreate,
    QuoteDetailResponse,
    QuoteFilters,
    QuoteItem,
    QuoteItemCreate,
    QuoteItemPublic,
    QuoteListResponse,
    QuotePublic,
    QuoteStatistics,
    QuoteStatus,
    QuoteUpdate,
)
from servicepro.services import money
from servicepro.services.offline_store import OfflineStore
from servicepro.services.sequence_service import SequenceService

logger = logging.getLogger(__name__)

DRAFT_NUMBER_PREFIX = "QUO-DRAFT-"

EDITABLE_STATUSES = {QuoteStatus.DRAFT.value, QuoteStatus.SENT.value, QuoteStatus.VIEWED.value}
PUBLIC_STATUSES = {
    QuoteStatus.SENT.value,
    QuoteStatus.VIEWED.value,
    QuoteStatus.APPROVED.value,
    QuoteStatus.DECLINED.value,
}

# Conversion is the only way into ``converted``; see ConversionService.
ALLOWED_TRANSITIONS = {
    QuoteStatus.DRAFT.value: {QuoteStatus.SENT.value},
    QuoteStatus.SENT.value: {
        QuoteStatus.VIEWED.value,
        QuoteStatus.APPROVED.value,
        QuoteStatus.DECLINED.value,
        QuoteStatus.EXPIRED.value,
    },
    QuoteStatus.VIEWED.value: {
        QuoteStatus.APPROVED.value,
        QuoteStatus.DECLINED.value,
        QuoteStatus.EXPIRED.value,
    },
    QuoteStatus.APPROVED.value: {QuoteStatus.CONVERTED.value},
}

SORTABLE_FIELDS = {"created_at", "updated_at", "quote_number", "title", "status", "total_amount", "valid_until"}
REQUIRED_FIELDS = {"title", "tax_rate", "discount_amount"}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def is_draft_number(quote_number: str) -> bool:
    return quote_number.startswith(DRAFT_NUMBER_PREFIX)


def build_items(items: List[QuoteItemCreate]) -> List[QuoteItem]:
    return [
        QuoteItem(
            item_type=item.item_type,
            name=item.name,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=money.line_total(item.quantity, item.unit_price),
            inventory_item_id=item.inventory_item_id,
            sort_order=index,
        )
        for index, item in enumerate(items)
    ]


def compute_totals(items, tax_rate: Decimal, discount_amount: Decimal) -> money.DocumentTotals:
    subtotal = money.sum_amounts(item.total_price for item in items)
    if money.to_minor(discount_amount) > money.to_minor(subtotal):
        raise ValidationError(
            f"Discount {discount_amount} cannot exceed the subtotal {subtotal}"
        )
    return money.calculate_totals(subtotal, discount_amount, tax_rate)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class QuoteService:
    """Quote reads and writes against the remote database.

    Reads fall back to the local cache when the remote database fails;
    writes that fail are stored in the offline queue and replayed by
    ``SyncService``.
    """

    def __init__(self, session: Session, store: OfflineStore):
        self.session = session
        self.store = store

    # Reads

    def list_quotes(
        self,
        filters: Optional[QuoteFilters] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        per_page: int = 20,
    ) -> QuoteListResponse:
        filters = filters or QuoteFilters()
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(f"Cannot sort quotes by '{sort_by}'")
        page = max(page, 1)
        per_page = max(per_page, 1)

        try:
            statement = self._apply_filters(select(Quote), filters)
            total_count = self.session.exec(
                select(func.count()).select_from(statement.subquery())
            ).one()

            column = getattr(Quote, sort_by)
            ordering = column.asc() if sort_order == "asc" else column.desc()
            quotes = self.session.exec(
                statement.order_by(ordering).offset((page - 1) * per_page).limit(per_page)
            ).all()
            results = [QuotePublic.model_validate(quote) for quote in quotes]
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning("Failed to fetch quotes from server, using cache: %s", e)
            return self._list_from_cache(filters, sort_by, sort_order, page, per_page)

        for quote in results:
            self._cache(quote)

        return QuoteListResponse(
            quotes=results,
            total_count=total_count,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_count / per_page),
            from_cache=False,
        )

    def get_quote(self, quote_id: UUID) -> QuoteDetailResponse:
        try:
            quote = self.session.get(Quote, quote_id)
            public = QuotePublic.model_validate(quote) if quote else None
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning("Failed to fetch quote %s from server, using cache: %s", quote_id, e)
            public = None

        if public is not None:
            self._cache(public)
            return QuoteDetailResponse(quote=public, from_cache=False)

        cached = self.store.get("quotes", str(quote_id))
        if cached is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        return QuoteDetailResponse(quote=QuotePublic.model_validate(cached), from_cache=True)

    def get_public_quote(self, quote_id: UUID) -> QuotePublic:
        """Customer-facing view. The first view of a sent quote marks it viewed."""
        quote = self.session.get(Quote, quote_id)
        if quote is None or quote.status not in PUBLIC_STATUSES:
            raise NotFoundError(f"Quote {quote_id} not found")

        if quote.status == QuoteStatus.SENT.value:
            return self.mark_viewed(quote_id)
        return QuotePublic.model_validate(quote)

    # Writes

    def create_quote(self, request: QuoteCreate, offline_fallback: bool = True) -> QuotePublic:
        items = build_items(request.items)
        totals = compute_totals(items, request.tax_rate, request.discount_amount)

        try:
            quote_number = SequenceService(self.session).next_number("quote")
            quote = Quote(
                quote_number=quote_number,
                customer_id=request.customer_id,
                created_by=request.created_by,
                title=request.title,
                description=request.description,
                status=QuoteStatus.DRAFT.value,
                valid_until=request.valid_until,
                terms_and_conditions=request.terms_and_conditions,
                notes=request.notes,
                subtotal=totals.subtotal,
                tax_rate=request.tax_rate,
                tax_amount=totals.tax_amount,
                discount_amount=totals.discount_amount,
                total_amount=totals.total_amount,
            )
            quote.items = items
            self.session.add(quote)
            self.session.commit()
            self.session.refresh(quote)
            public = QuotePublic.model_validate(quote)
        except SQLAlchemyError as e:
            self.session.rollback()
            if not offline_fallback:
                raise
            logger.warning("Failed to create quote on server, saving offline draft: %s", e)
            return self._create_offline_draft(request, items, totals)

        self._cache(public)
        logger.info("Created quote %s", public.quote_number)
        return public

    def update_quote(self, quote_id: UUID, changes: QuoteUpdate, offline_fallback: bool = True) -> QuotePublic:
        """Edit a draft, sent or viewed quote. ``changes.items`` replaces every line."""
        try:
            quote = self.session.get(Quote, quote_id)
            if quote is None:
                cached = self.store.get("quotes", str(quote_id))
                if offline_fallback and cached and is_draft_number(cached["quote_number"]):
                    self._queue_draft_update(quote_id, cached, changes)
                raise NotFoundError(f"Quote {quote_id} not found")
            if quote.status not in EDITABLE_STATUSES:
                raise ConflictError(f"Quote in status '{quote.status}' can no longer be edited")

            for field, value in changes.model_dump(exclude_unset=True, exclude={"items"}).items():
                if value is None and field in REQUIRED_FIELDS:
                    continue
                setattr(quote, field, value)

            if changes.items is not None:
                quote.items.clear()
                self.session.flush()
                quote.items.extend(build_items(changes.items))

            totals = compute_totals(quote.items, quote.tax_rate, quote.discount_amount)
            quote.subtotal = totals.subtotal
            quote.tax_amount = totals.tax_amount
            quote.total_amount = totals.total_amount
            quote.updated_at = datetime.utcnow()

            self.session.add(quote)
            self.session.commit()
            self.session.refresh(quote)
            public = QuotePublic.model_validate(quote)
        except SQLAlchemyError as e:
            self.session.rollback()
            if not offline_fallback:
                raise
            logger.warning("Failed to update quote %s on server, queueing: %s", quote_id, e)
            cached = self.store.get("quotes", str(quote_id))
            if cached and is_draft_number(cached["quote_number"]):
                self._queue_draft_update(quote_id, cached, changes)
            action_id = self.store.queue_action(
                "QUOTE_UPDATE",
                {"changes": changes.model_dump(mode="json", exclude_unset=True)},
                job_id=str(quote_id),
            )
            raise OfflineQueuedError("Quote update saved offline", action_id)
        except ValidationError:
            self.session.rollback()
            raise

        self._cache(public)
        return public

    def send_quote(self, quote_id: UUID, offline_fallback: bool = True) -> QuotePublic:
        def mark_sent(quote: Quote, now: datetime) -> None:
            quote.sent_at = now

        return self._transition(
            quote_id,
            QuoteStatus.SENT.value,
            mark_sent,
            action_type="QUOTE_SEND" if offline_fallback else None,
            action_payload={},
        )

    def mark_viewed(self, quote_id: UUID) -> QuotePublic:
        def mark(quote: Quote, now: datetime) -> None:
            quote.viewed_at = now

        return self._transition(quote_id, QuoteStatus.VIEWED.value, mark)

    def approve_quote(self, quote_id: UUID, approval: QuoteApproval, offline_fallback: bool = True) -> QuotePublic:
        """Approve with the customer's signature.

        The signature keeps the time the customer signed, so an approval
        replayed from the offline queue is stamped with the original time.
        """
        if approval.signed_at is None:
            approval = approval.model_copy(update={"signed_at": datetime.utcnow()})

        def approve(quote: Quote, now: datetime) -> None:
            quote.approved_at = now
            quote.customer_signature = {
                "signature_data": approval.signature_data,
                "timestamp": approval.signed_at.isoformat(),
                "device_info": approval.device_info,
            }

        return self._transition(
            quote_id,
            QuoteStatus.APPROVED.value,
            approve,
            action_type="QUOTE_APPROVE" if offline_fallback else None,
            action_payload=approval.model_dump(mode="json"),
        )

    def decline_quote(
        self,
        quote_id: UUID,
        reason: Optional[str] = None,
        offline_fallback: bool = True,
    ) -> QuotePublic:
        def decline(quote: Quote, now: datetime) -> None:
            quote.declined_at = now
            quote.declined_reason = reason

        return self._transition(
            quote_id,
            QuoteStatus.DECLINED.value,
            decline,
            action_type="QUOTE_DECLINE" if offline_fallback else None,
            action_payload={"reason": reason},
        )

    def expire_quotes(self, as_of: Optional[date] = None) -> List[QuotePublic]:
        """Expire sent and viewed quotes whose ``valid_until`` is before ``as_of``."""
        as_of = as_of or datetime.utcnow().date()
        now = datetime.utcnow()
        quotes = self.session.exec(
            select(Quote).where(
                Quote.status.in_([QuoteStatus.SENT.value, QuoteStatus.VIEWED.value]),
                Quote.valid_until != None,  # noqa: E711
                Quote.valid_until < as_of,
            )
        ).all()

        for quote in quotes:
            quote.status = QuoteStatus.EXPIRED.value
            quote.expired_at = now
            quote.updated_at = now
            self.session.add(quote)
        self.session.commit()

        expired = []
        for quote in quotes:
            self.session.refresh(quote)
            public = QuotePublic.model_validate(quote)
            self._cache(public)
            expired.append(public)

        if expired:
            logger.info("Expired %d quotes valid until before %s", len(expired), as_of)
        return expired

    def delete_quote(self, quote_id: UUID) -> None:
        quote = self.session.get(Quote, quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        if quote.status == QuoteStatus.CONVERTED.value:
            raise ConflictError("Converted quotes cannot be deleted")

        self.session.delete(quote)
        self.session.commit()
        self.store.delete("quotes", str(quote_id))
        logger.info("Deleted quote %s", quote.quote_number)

    def get_statistics(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> QuoteStatistics:
        statement = select(Quote)
        if date_from:
            statement = statement.where(Quote.created_at >= naive_utc(date_from))
        if date_to:
            statement = statement.where(Quote.created_at <= naive_utc(date_to))
        quotes = self.session.exec(statement).all()

        by_status = {status.value: 0 for status in QuoteStatus}
        by_status.update(Counter(quote.status for quote in quotes))

        total_minor = sum(money.to_minor(quote.total_amount) for quote in quotes)
        stats = QuoteStatistics(
            total_quotes=len(quotes),
            quotes_by_status=by_status,
            total_quoted_amount=money.from_minor(total_minor),
        )
        if not quotes:
            return stats

        stats.average_quote_value = money.from_minor(money.divide(total_minor, len(quotes)))

        sent = len(quotes) - by_status[QuoteStatus.DRAFT.value]
        approved = by_status[QuoteStatus.APPROVED.value] + by_status[QuoteStatus.CONVERTED.value]
        if sent:
            stats.approval_rate = round(approved / sent * 100, 2)
        if approved:
            stats.conversion_rate = round(by_status[QuoteStatus.CONVERTED.value] / approved * 100, 2)

        monthly: Dict[str, Dict[str, Any]] = {}
        for quote in quotes:
            month = quote.created_at.strftime("%Y-%m")
            bucket = monthly.setdefault(month, {"month": month, "count": 0, "total_minor": 0})
            bucket["count"] += 1
            bucket["total_minor"] += money.to_minor(quote.total_amount)
        stats.monthly_quotes = [
            {"month": month, "count": bucket["count"], "total_amount": money.from_minor(bucket["total_minor"])}
            for month, bucket in sorted(monthly.items())
        ]
        return stats

    # Helpers

    def _transition(
        self,
        quote_id: UUID,
        target: str,
        apply: Callable[[Quote, datetime], None],
        action_type: Optional[str] = None,
        action_payload: Optional[Dict[str, Any]] = None,
    ) -> QuotePublic:
        try:
            quote = self.session.get(Quote, quote_id)
            if quote is None:
                raise NotFoundError(f"Quote {quote_id} not found")
            if not can_transition(quote.status, target):
                raise InvalidStatusTransitionError("quote", quote.status, target)

            now = datetime.utcnow()
            quote.status = target
            quote.updated_at = now
            apply(quote, now)
            self.session.add(quote)
            self.session.commit()
            self.session.refresh(quote)
            public = QuotePublic.model_validate(quote)
        except SQLAlchemyError as e:
            self.session.rollback()
            if action_type is None:
                raise
            logger.warning("Failed to move quote %s to %s, queueing: %s", quote_id, target, e)
            action_id = self.store.queue_action(action_type, action_payload or {}, job_id=str(quote_id))
            raise OfflineQueuedError(f"Quote {target} action saved offline", action_id)

        self._cache(public)
        return public

    def _create_offline_draft(
        self,
        request: QuoteCreate,
        items: List[QuoteItem],
        totals: money.DocumentTotals,
    ) -> QuotePublic:
        now = datetime.utcnow()
        draft = QuotePublic(
            id=uuid4(),
            quote_number=f"{DRAFT_NUMBER_PREFIX}{int(time.time() * 1000)}",
            customer_id=request.customer_id,
            created_by=request.created_by,
            title=request.title,
            description=request.description,
            status=QuoteStatus.DRAFT.value,
            valid_until=request.valid_until,
            terms_and_conditions=request.terms_and_conditions,
            notes=request.notes,
            subtotal=totals.subtotal,
            tax_rate=request.tax_rate,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            total_amount=totals.total_amount,
            created_at=now,
            updated_at=now,
            items=[
                QuoteItemPublic(
                    id=uuid4(),
                    item_type=item.item_type,
                    name=item.name,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                    inventory_item_id=item.inventory_item_id,
                    sort_order=item.sort_order,
                )
                for item in items
            ],
        )
        record = draft.model_dump(mode="json")
        self.store.put("quotes", record)
        self.store.queue_action(
            "QUOTE_CREATE",
            {"data": record, "original_request": request.model_dump(mode="json")},
            job_id=str(draft.id),
        )
        logger.info("Saved offline draft quote %s", draft.quote_number)
        return draft

    def _queue_draft_update(self, quote_id: UUID, cached: Dict[str, Any], changes: QuoteUpdate) -> None:
        """Edit a quote that only exists locally; the edit replays after its create."""
        self.session.rollback()
        draft = QuotePublic.model_validate(cached)
        updates = changes.model_dump(exclude_unset=True, exclude={"items"})
        if changes.items is not None:
            items = build_items(changes.items)
            updates["items"] = [
                QuoteItemPublic(id=uuid4(), **item.model_dump(exclude={"id", "quote_id"}))
                for item in items
            ]
        else:
            items = draft.items
        draft = draft.model_copy(update=updates)
        totals = compute_totals(items, draft.tax_rate, draft.discount_amount)
        draft = draft.model_copy(update={
            "subtotal": totals.subtotal,
            "tax_amount": totals.tax_amount,
            "total_amount": totals.total_amount,
            "updated_at": datetime.utcnow(),
        })
        self.store.put("quotes", draft.model_dump(mode="json"))
        action_id = self.store.queue_action(
            "QUOTE_UPDATE",
            {"changes": changes.model_dump(mode="json", exclude_unset=True)},
            job_id=str(quote_id),
        )
        raise OfflineQueuedError("Quote update saved offline", action_id)

    def _cache(self, quote: QuotePublic) -> None:
        try:
            self.store.put("quotes", quote.model_dump(mode="json"))
        except SQLAlchemyError as e:
            self.store.session.rollback()
            logger.warning("Failed to cache quote %s: %s", quote.id, e)

    def _apply_filters(self, statement, filters: QuoteFilters):
        if filters.status:
            statement = statement.where(Quote.status.in_(filters.status))
        if filters.customer_id:
            statement = statement.where(Quote.customer_id == filters.customer_id)
        if filters.created_by:
            statement = statement.where(Quote.created_by == filters.created_by)
        if filters.date_from:
            statement = statement.where(Quote.created_at >= naive_utc(filters.date_from))
        if filters.date_to:
            statement = statement.where(Quote.created_at <= naive_utc(filters.date_to))
        if filters.amount_min is not None:
            statement = statement.where(Quote.total_amount >= filters.amount_min)
        if filters.amount_max is not None:
            statement = statement.where(Quote.total_amount <= filters.amount_max)
        if filters.search_term:
            pattern = f"%{filters.search_term}%"
            statement = statement.where(
                or_(
                    Quote.title.ilike(pattern),
                    Quote.quote_number.ilike(pattern),
                    Quote.description.ilike(pattern),
                )
            )
        return statement

    def _list_from_cache(
        self,
        filters: QuoteFilters,
        sort_by: str,
        sort_order: str,
        page: int,
        per_page: int,
    ) -> QuoteListResponse:
        quotes = [QuotePublic.model_validate(record) for record in self.store.get_all("quotes")]
        quotes = [quote for quote in quotes if self._matches(quote, filters)]

        present = [quote for quote in quotes if getattr(quote, sort_by) is not None]
        missing = [quote for quote in quotes if getattr(quote, sort_by) is None]
        present.sort(key=lambda quote: getattr(quote, sort_by), reverse=sort_order != "asc")
        quotes = present + missing

        total_count = len(quotes)
        start = (page - 1) * per_page
        return QuoteListResponse(
            quotes=quotes[start:start + per_page],
            total_count=total_count,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_count / per_page),
            from_cache=True,
        )

    @staticmethod
    def _matches(quote: QuotePublic, filters: QuoteFilters) -> bool:
        if filters.status and quote.status not in filters.status:
            return False
        if filters.customer_id and quote.customer_id != filters.customer_id:
            return False
        if filters.created_by and quote.created_by != filters.created_by:
            return False
        if filters.date_from and quote.created_at < naive_utc(filters.date_from):
            return False
        if filters.date_to and quote.created_at > naive_utc(filters.date_to):
            return False
        if filters.amount_min is not None and quote.total_amount < filters.amount_min:
            return False
        if filters.amount_max is not None and quote.total_amount > filters.amount_max:
            return False
        if filters.search_term:
            term = filters.search_term.lower()
            haystack = [quote.title, quote.quote_number, quote.description or ""]
            if not any(term in value.lower() for value in haystack):
                return False
        return True

