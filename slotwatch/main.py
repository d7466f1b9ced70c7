import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from slotwatch.api import health, jobs
from slotwatch.config import CacheBackend, settings
from slotwatch.models.database import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    if settings.cache_backend == CacheBackend.DATABASE:
        await init_db()

    if not settings.scheduler_api_key:
        logger.warning(
            "SCHEDULER_API_KEY is not configured. "
            "The /jobs/run-scan endpoint will return 500 errors. "
            "Set SCHEDULER_API_KEY environment variable for production use."
        )

    yield


app = FastAPI(
    title="SlotWatch",
    description="Facility reservation availability monitor",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(jobs.router)
