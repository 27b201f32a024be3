"""Local-store models: the record cache and the offline action outbox."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import JSON, Column, Field, SQLModel


class CacheEntry(SQLModel, table=True):
    """Mirrored copy of a remote record, grouped by object store."""

    __tablename__ = "cache_entries"

    store: str = Field(primary_key=True)  # quotes | jobs | invoices
    key: str = Field(primary_key=True)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class QueueItem(SQLModel, table=True):
    """Deferred write waiting to reach the remote backend."""

    __tablename__ = "queue_items"

    id: str = Field(primary_key=True)
    type: str = Field(index=True)
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    timestamp: datetime = Field(default_factory=datetime.utcnow, index=True)
    job_id: Optional[str] = Field(default=None, index=True)
    attempts: int = 0
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    status: str = Field(default="pending", index=True)  # pending | failed


class QueueItemPublic(SQLModel):
    id: str
    type: str
    payload: Dict[str, Any]
    timestamp: datetime
    job_id: Optional[str] = None
    attempts: int
    last_error: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    status: str


class QueueStats(SQLModel):
    total_actions: int = 0
    failed_actions: int = 0
    actions_by_type: Dict[str, int] = Field(default_factory=dict)
    oldest_action: Optional[datetime] = None
    newest_action: Optional[datetime] = None


class SyncResult(SQLModel):
    success: bool = True
    processed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    errors: List[str] = Field(default_factory=list)
