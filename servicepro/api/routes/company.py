"""Company settings API endpoints."""

from fastapi import APIRouter, Depends
from sqlmodel import Session

from servicepro.api.deps import get_db, http_error
from servicepro.core.errors import ServiceProError
from servicepro.models.company import CompanySettingsPublic, CompanySettingsUpdate
from servicepro.services import CompanySettingsService

router = APIRouter(prefix="/company-settings", tags=["company-settings"])


@router.get("/", response_model=CompanySettingsPublic)
def get_company_settings(session: Session = Depends(get_db)):
    """
    Get the active company settings.
    """
    try:
        return CompanySettingsService(session).require_settings()
    except ServiceProError as e:
        raise http_error(e)


@router.put("/", response_model=CompanySettingsPublic)
def update_company_settings(
    update: CompanySettingsUpdate,
    session: Session = Depends(get_db)
):
    """
    Update company settings. Document counters can only move forward.
    """
    try:
        return CompanySettingsService(session).update_settings(update)
    except ServiceProError as e:
        raise http_error(e)


@router.post("/initialize", response_model=CompanySettingsPublic)
def initialize_company_settings(session: Session = Depends(get_db)):
    """
    Create the default company settings if none exist yet.
    """
    return CompanySettingsService(session).initialize_settings()
