from typing import Generator

from fastapi import Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlmodel import Session

from servicepro.core.db import cache_engine, engine
from servicepro.core.errors import OfflineQueuedError, ServiceProError, ValidationError
from servicepro.services.offline_store import OfflineStore


def get_db() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


def get_cache() -> Generator[Session, None, None]:
    with Session(cache_engine) as session:
        yield session


def get_offline_store(cache: Session = Depends(get_cache)) -> OfflineStore:
    return OfflineStore(cache)


def http_error(error: ServiceProError) -> HTTPException:
    """Translate a service error into the HTTP error the API answers with."""
    if isinstance(error, ValidationError):
        return HTTPException(
            status_code=error.status_code,
            detail={"message": error.message, "errors": error.errors},
        )
    return HTTPException(status_code=error.status_code, detail=error.message)


def queued_response(error: OfflineQueuedError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"queued": True, "action_id": error.action_id, "message": error.message},
    )
