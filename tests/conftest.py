import os
from collections.abc import Generator
from unittest.mock import MagicMock

# Point both engines at in-memory SQLite before the application is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOCAL_CACHE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from servicepro.api.deps import get_cache, get_db
from servicepro.core.db import init_local_cache
from servicepro.main import app
from servicepro.models import company, domain, invoices, jobs, offline, quotes  # noqa: F401
from servicepro.models.company import CompanySettings
from servicepro.services import CompanySettingsService, OfflineStore


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a test database session for the remote store."""
    engine = _memory_engine()
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def cache_db() -> Generator[Session, None, None]:
    """Create a test session for the local cache and outbox."""
    engine = _memory_engine()
    init_local_cache(bind=engine)

    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def store(cache_db: Session) -> OfflineStore:
    return OfflineStore(cache_db)


@pytest.fixture(scope="function")
def company_settings(db: Session) -> CompanySettings:
    """Default company settings: counters at 1000, VAT 15%."""
    return CompanySettingsService(db).initialize_settings()


@pytest.fixture(scope="function")
def offline_db() -> MagicMock:
    """A session whose every database call fails as if the server were unreachable."""
    error = OperationalError("SELECT 1", {}, Exception("could not connect to server"))
    session = MagicMock(spec=Session)
    session.exec.side_effect = error
    session.get.side_effect = error
    session.commit.side_effect = error
    session.flush.side_effect = error
    session.refresh.side_effect = error
    return session


@pytest.fixture(scope="function")
def client(db: Session, cache_db: Session) -> Generator[TestClient, None, None]:
    """Create a test client bound to the test databases."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_cache] = lambda: cache_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def offline_client(offline_db: MagicMock, cache_db: Session) -> Generator[TestClient, None, None]:
    """Create a test client whose server database is unreachable."""
    app.dependency_overrides[get_db] = lambda: offline_db
    app.dependency_overrides[get_cache] = lambda: cache_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
