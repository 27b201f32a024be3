"""
Periodic drain of the offline queue.

The application lifespan starts a background scheduler that runs one sync
pass every ``SYNC_INTERVAL_SECONDS``; ``scripts/run_sync.py`` runs a single
pass from the command line.
"""

import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from servicepro.core.db import cache_engine, engine
from servicepro.models.offline import SyncResult
from servicepro.services.offline_store import OfflineStore
from servicepro.services.sync_service import SyncService

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "sync_offline_queue"


def run_pending_sync(
    session_factory: Optional[Callable[[], Session]] = None,
    cache_session_factory: Optional[Callable[[], Session]] = None,
) -> SyncResult:
    """Run one sync pass with fresh sessions on the remote and local stores."""
    session_factory = session_factory or (lambda: Session(engine))
    cache_session_factory = cache_session_factory or (lambda: Session(cache_engine))
    with session_factory() as session, cache_session_factory() as cache_session:
        return SyncService(session, OfflineStore(cache_session)).run_sync()


def _scheduled_sync() -> None:
    try:
        run_pending_sync()
    except Exception:
        logger.exception("Scheduled sync pass failed")


def start_sync_scheduler(interval_seconds: int) -> BackgroundScheduler:
    """Start a scheduler that drains the queue every ``interval_seconds``.

    Only one pass runs at a time; passes missed while one was running are
    collapsed into a single run.
    """
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        func=_scheduled_sync,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=SYNC_JOB_ID,
        name="Offline queue sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Sync scheduler started, interval %ss", interval_seconds)
    return scheduler


def stop_sync_scheduler(scheduler: BackgroundScheduler) -> None:
    """Stop the scheduler, letting a running pass finish."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
    logger.info("Sync scheduler stopped")
