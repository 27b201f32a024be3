"""Offline queue sync API endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from servicepro.api.deps import get_db, get_offline_store
from servicepro.models.offline import QueueItemPublic, QueueStats, SyncResult
from servicepro.services import OfflineStore, SyncService

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/", response_model=SyncResult)
def run_sync(
    session: Session = Depends(get_db),
    store: OfflineStore = Depends(get_offline_store)
):
    """
    Replay queued offline actions against the server, oldest first.
    """
    return SyncService(session, store).run_sync()


@router.get("/pending", response_model=List[QueueItemPublic])
def get_pending_actions(store: OfflineStore = Depends(get_offline_store)):
    """
    List queued actions, including ones that failed permanently.
    """
    return store.get_pending_actions(include_failed=True)


@router.get("/stats", response_model=QueueStats)
def get_queue_stats(store: OfflineStore = Depends(get_offline_store)):
    return store.get_queue_stats()
