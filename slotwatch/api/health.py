from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "slotwatch"}


@router.get("/")
async def root() -> dict[str, str | dict[str, str]]:
    return {
        "service": "SlotWatch - Facility Availability Monitor",
        "version": "0.1.0",
        "endpoints": {
            "health": "/health",
            "run_scan": "/jobs/run-scan",
        },
    }
