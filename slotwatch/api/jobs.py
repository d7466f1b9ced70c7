"""
Scheduled job endpoint for scheduler-triggered scan runs.

The scheduler calls POST /jobs/run-scan with the X-Scheduler-API-Key header.
Only one run may be in progress at a time: the dedup cache is loaded once per
run and written through on every add, which is only safe for a single writer.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from slotwatch.config import settings
from slotwatch.errors import ConfigurationError
from slotwatch.services.scan_service import build_scan_service
from slotwatch.services.target_loader import load_targets

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])

SCAN_EXECUTION_TIMEOUT_SECONDS = 1800

_run_lock = asyncio.Lock()


class TargetStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


class ScanJobItem(BaseModel):
    name: str
    url: str
    status: TargetStatus
    elapsed_ms: int
    new_keys: list[str] = []
    error: str | None = None


class ScanJobResult(BaseModel):
    executed_at: datetime
    total_targets: int
    hits: int
    new_keys: int
    errors: int
    notified: bool
    results: list[ScanJobItem]


def verify_scheduler_auth(
    x_scheduler_api_key: str | None = Header(
        None, description="API key for scheduler authentication"
    ),
) -> None:
    if not settings.scheduler_api_key:
        raise HTTPException(status_code=500, detail="SCHEDULER_API_KEY is not configured")
    if not x_scheduler_api_key:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide X-Scheduler-API-Key header.",
        )
    if x_scheduler_api_key != settings.scheduler_api_key:
        raise HTTPException(status_code=401, detail="Invalid scheduler API key")


@router.post("/run-scan", response_model=ScanJobResult)
async def run_scan(_: None = Depends(verify_scheduler_auth)) -> ScanJobResult:
    """
    Run one scan over the configured targets.

    Per-target failures are reported in the result items; a malformed target
    file or a fatal run error returns 500, and a concurrent call returns 409.
    """
    if _run_lock.locked():
        raise HTTPException(status_code=409, detail="A scan is already in progress")

    async with _run_lock:
        try:
            targets = load_targets(settings.targets_path)
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            raise HTTPException(status_code=500, detail=str(e)) from e

        service = build_scan_service()
        try:
            report = await asyncio.wait_for(
                service.run(targets), timeout=SCAN_EXECUTION_TIMEOUT_SECONDS
            )
        except TimeoutError as e:
            logger.error(f"Scan timed out after {SCAN_EXECUTION_TIMEOUT_SECONDS}s")
            raise HTTPException(status_code=504, detail="Scan timed out") from e
        except Exception as e:
            logger.exception(f"Scan failed with error: {e}")
            raise HTTPException(status_code=500, detail=f"Scan failed: {e}") from e

    items = [
        ScanJobItem(
            name=r.name,
            url=r.url,
            status=TargetStatus.ERROR
            if r.error
            else (TargetStatus.HIT if r.hit else TargetStatus.MISS),
            elapsed_ms=r.elapsed_ms,
            new_keys=list(r.new_keys),
            error=r.error,
        )
        for r in report.results
    ]
    return ScanJobResult(
        executed_at=report.started_at,
        total_targets=len(report.results),
        hits=report.hit_count,
        new_keys=report.new_key_count,
        errors=report.error_count,
        notified=report.notified,
        results=items,
    )
