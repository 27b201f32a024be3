import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from servicepro.api.main import api_router
from servicepro.core.config import settings
from servicepro.core.db import init_local_cache
from servicepro.services import start_sync_scheduler, stop_sync_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    init_local_cache()

    scheduler = None
    if settings.SYNC_INTERVAL_SECONDS > 0:
        scheduler = start_sync_scheduler(settings.SYNC_INTERVAL_SECONDS)

    logger.info("%s started", settings.PROJECT_NAME)
    yield

    if scheduler is not None:
        stop_sync_scheduler(scheduler)
    logger.info("%s stopped", settings.PROJECT_NAME)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

app.include_router(api_router, prefix=settings.API_V1_STR)
