from sqlmodel import SQLModel, create_engine

from servicepro.core.config import settings

engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)

cache_engine = create_engine(
    settings.LOCAL_CACHE_URL,
    connect_args={"check_same_thread": False},
)


def init_local_cache(bind=None) -> None:
    """Create the local cache and outbox tables if they do not exist."""
    from servicepro.models.offline import CacheEntry, QueueItem

    SQLModel.metadata.create_all(
        bind or cache_engine,
        tables=[CacheEntry.__table__, QueueItem.__table__],
    )
