"""Replays the offline queue against the remote database."""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from servicepro.core.config import settings
from servicepro.core.errors import ServiceProError
from servicepro.models.jobs import JobNoteCreate, TimeEntryCreate
from servicepro.models.offline import QueueItem, SyncResult
from servicepro.models.quotes import QuoteApproval, QuoteCreate, QuoteUpdate
from servicepro.services.job_service import JobService
from servicepro.services.offline_store import QUEUE_FAILED, OfflineStore
from servicepro.services.quote_service import QuoteService

logger = logging.getLogger(__name__)


def backoff_delay(attempts: int) -> timedelta:
    """Delay before retry number ``attempts + 1``: base * 2^(attempts - 1), capped."""
    seconds = settings.SYNC_BACKOFF_BASE_SECONDS * (2 ** max(attempts - 1, 0))
    return timedelta(seconds=min(seconds, settings.SYNC_BACKOFF_MAX_SECONDS))


class SyncService:
    """Drains queued actions in the order they were recorded.

    A connection failure stops the pass so later actions never overtake an
    earlier one. A business error (or running out of attempts) marks the
    action failed; failed actions are kept for inspection and skipped.
    """

    def __init__(self, session: Session, store: OfflineStore):
        self.session = session
        self.store = store
        self.quote_service = QuoteService(session, store)
        self.job_service = JobService(session, store)
        self.handlers: Dict[str, Callable[[QueueItem], Any]] = {
            "QUOTE_CREATE": self._replay_quote_create,
            "QUOTE_UPDATE": self._replay_quote_update,
            "QUOTE_SEND": self._replay_quote_send,
            "QUOTE_APPROVE": self._replay_quote_approve,
            "QUOTE_DECLINE": self._replay_quote_decline,
            "NOTE": self._replay_note,
            "CHECK": self._replay_check,
        }

    def run_sync(self, now: Optional[datetime] = None) -> SyncResult:
        now = now or datetime.utcnow()
        result = SyncResult()
        pending = self.store.get_pending_actions()
        logger.info("Starting sync of %d queued actions", len(pending))

        for position, item in enumerate(pending):
            if item.next_attempt_at is not None and item.next_attempt_at > now:
                logger.info("Action %s not due until %s, stopping", item.id, item.next_attempt_at)
                result.skipped_count = len(pending) - position
                break

            action_type = item.type
            item_id = item.id
            try:
                handler = self.handlers.get(action_type)
                if handler is None:
                    raise ServiceProError(f"Unknown action type: {action_type}")
                handler(item)
            except SQLAlchemyError as e:
                self.session.rollback()
                result.failed_count += 1
                result.errors.append(f"{action_type} {item_id}: {e}")
                if self._record_retry(item, str(e), now):
                    continue
                result.skipped_count = len(pending) - position - 1
                logger.warning("Sync stopped at %s %s: %s", action_type, item_id, e)
                break
            except (ServiceProError, KeyError, TypeError, ValueError) as e:
                # Rejected by the server or malformed; retrying cannot help
                self.session.rollback()
                message = getattr(e, "message", str(e))
                result.failed_count += 1
                result.errors.append(f"{action_type} {item_id}: {message}")
                self._mark_failed(item, message)
                continue

            self.store.remove_action(item_id)
            result.processed_count += 1

        result.success = result.failed_count == 0
        logger.info(
            "Sync finished: %d processed, %d failed, %d skipped",
            result.processed_count,
            result.failed_count,
            result.skipped_count,
        )
        return result

    def _record_retry(self, item: QueueItem, error: str, now: datetime) -> bool:
        """Schedule the next attempt. Returns True when the action is now terminally failed."""
        item.attempts += 1
        item.last_error = error
        if item.attempts >= settings.SYNC_MAX_ATTEMPTS:
            item.status = QUEUE_FAILED
            self.store.save_action(item)
            logger.error("Action %s %s failed after %d attempts", item.type, item.id, item.attempts)
            return True
        item.next_attempt_at = now + backoff_delay(item.attempts)
        self.store.save_action(item)
        return False

    def _mark_failed(self, item: QueueItem, error: str) -> None:
        item.attempts += 1
        item.last_error = error
        item.status = QUEUE_FAILED
        self.store.save_action(item)
        logger.error("Action %s %s rejected: %s", item.type, item.id, error)

    # Handlers

    def _replay_quote_create(self, item: QueueItem) -> None:
        request = QuoteCreate.model_validate(item.payload["original_request"])
        quote = self.quote_service.create_quote(request, offline_fallback=False)

        draft_id = item.job_id
        draft_number = (item.payload.get("data") or {}).get("quote_number")
        self.store.remove_action(item.id)
        if draft_id:
            self.store.delete("quotes", draft_id)
            moved = self.store.remap_job_id(draft_id, str(quote.id))
            logger.info(
                "Draft %s synced as %s, %d queued actions remapped",
                draft_number,
                quote.quote_number,
                moved,
            )

    def _replay_quote_update(self, item: QueueItem) -> None:
        changes = QuoteUpdate.model_validate(item.payload.get("changes", {}))
        self.quote_service.update_quote(UUID(item.job_id), changes, offline_fallback=False)

    def _replay_quote_send(self, item: QueueItem) -> None:
        self.quote_service.send_quote(UUID(item.job_id), offline_fallback=False)

    def _replay_quote_approve(self, item: QueueItem) -> None:
        approval = QuoteApproval.model_validate(item.payload)
        self.quote_service.approve_quote(UUID(item.job_id), approval, offline_fallback=False)

    def _replay_quote_decline(self, item: QueueItem) -> None:
        self.quote_service.decline_quote(
            UUID(item.job_id), item.payload.get("reason"), offline_fallback=False
        )

    def _replay_note(self, item: QueueItem) -> None:
        note = JobNoteCreate.model_validate(item.payload)
        self.job_service.add_note(UUID(item.job_id), note, offline_fallback=False)

    def _replay_check(self, item: QueueItem) -> None:
        entry = TimeEntryCreate.model_validate(item.payload)
        self.job_service.record_time_entry(UUID(item.job_id), entry, offline_fallback=False)

