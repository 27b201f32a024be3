"""Local record cache and offline action queue.

Both live in the local SQLite database (``LOCAL_CACHE_URL``). The cache
mirrors records read from or written to the remote database so reads keep
working without a connection; the queue holds writes that could not reach
the remote database and waits for the sync pass to replay them.
"""

import hashlib
import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func
from sqlmodel import Session, select

from servicepro.models.offline import CacheEntry, QueueItem, QueueStats

logger = logging.getLogger(__name__)

STORES = ("quotes", "jobs", "invoices")

QUEUE_PENDING = "pending"
QUEUE_FAILED = "failed"


def action_id(action_type: str, payload: Dict[str, Any], job_id: Optional[str]) -> str:
    """Content hash of an action; identical actions share an id."""
    body = json.dumps(
        {"type": action_type, "job_id": job_id, "payload": payload},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()[:32]


class OfflineStore:
    """Cache and outbox backed by the local database session."""

    def __init__(self, session: Session):
        self.session = session

    # Cache

    def put(self, store: str, record: Dict[str, Any]) -> None:
        if store not in STORES:
            raise ValueError(f"Unknown store: {store}")
        key = str(record["id"])
        entry = self.session.get(CacheEntry, (store, key))
        if entry is None:
            entry = CacheEntry(store=store, key=key, data=record)
        else:
            entry.data = record
            entry.updated_at = datetime.utcnow()
        self.session.add(entry)
        self.session.commit()

    def get(self, store: str, key: str) -> Optional[Dict[str, Any]]:
        entry = self.session.get(CacheEntry, (store, str(key)))
        return entry.data if entry else None

    def get_all(self, store: str) -> List[Dict[str, Any]]:
        entries = self.session.exec(
            select(CacheEntry).where(CacheEntry.store == store)
        ).all()
        return [entry.data for entry in entries]

    def delete(self, store: str, key: str) -> None:
        entry = self.session.get(CacheEntry, (store, str(key)))
        if entry is not None:
            self.session.delete(entry)
            self.session.commit()

    def clear(self, store: str) -> None:
        self.session.exec(delete(CacheEntry).where(CacheEntry.store == store))
        self.session.commit()

    # Queue

    def queue_action(
        self,
        action_type: str,
        payload: Dict[str, Any],
        job_id: Optional[str] = None,
    ) -> str:
        """Store an action for later replay and return its id.

        Queueing an action whose type, job and payload match one already in
        the queue returns the existing id without adding a second entry.
        """
        job_key = str(job_id) if job_id is not None else None
        item_id = action_id(action_type, payload, job_key)

        if self.session.get(QueueItem, item_id) is not None:
            logger.info("Action %s already queued as %s", action_type, item_id)
            return item_id

        # Timestamps are strictly increasing so replay order matches queue order
        timestamp = datetime.utcnow()
        latest = self.session.exec(select(func.max(QueueItem.timestamp))).one()
        if latest is not None and timestamp <= latest:
            timestamp = latest + timedelta(microseconds=1)

        item = QueueItem(
            id=item_id,
            type=action_type,
            payload=json.loads(json.dumps(payload, default=str)),
            timestamp=timestamp,
            job_id=job_key,
        )
        self.session.add(item)
        self.session.commit()
        logger.info("Queued %s action %s for %s", action_type, item_id, job_key)
        return item_id

    def get_pending_actions(self, include_failed: bool = False) -> List[QueueItem]:
        statement = select(QueueItem)
        if not include_failed:
            statement = statement.where(QueueItem.status == QUEUE_PENDING)
        statement = statement.order_by(QueueItem.timestamp, QueueItem.id)
        return list(self.session.exec(statement).all())

    def get_action(self, item_id: str) -> Optional[QueueItem]:
        return self.session.get(QueueItem, item_id)

    def get_pending_count_by_job(self, job_id: str) -> int:
        items = self.session.exec(
            select(QueueItem).where(
                QueueItem.job_id == str(job_id),
                QueueItem.status == QUEUE_PENDING,
            )
        ).all()
        return len(items)

    def save_action(self, item: QueueItem) -> None:
        self.session.add(item)
        self.session.commit()

    def remove_action(self, item_id: str) -> None:
        item = self.session.get(QueueItem, item_id)
        if item is not None:
            self.session.delete(item)
            self.session.commit()

    def clear_queue(self) -> None:
        self.session.exec(delete(QueueItem))
        self.session.commit()
        logger.info("Cleared offline queue")

    def get_queue_stats(self) -> QueueStats:
        items = self.get_pending_actions(include_failed=True)
        if not items:
            return QueueStats()

        timestamps = [item.timestamp for item in items]
        return QueueStats(
            total_actions=len(items),
            failed_actions=sum(1 for item in items if item.status == QUEUE_FAILED),
            actions_by_type=dict(Counter(item.type for item in items)),
            oldest_action=min(timestamps),
            newest_action=max(timestamps),
        )

    def remap_job_id(self, old_job_id: str, new_job_id: str) -> int:
        """Point queued actions at a record's server id once it is known."""
        items = self.session.exec(
            select(QueueItem).where(QueueItem.job_id == str(old_job_id))
        ).all()
        for item in items:
            item.job_id = str(new_job_id)
            self.session.add(item)
        self.session.commit()
        return len(items)
