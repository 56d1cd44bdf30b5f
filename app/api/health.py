from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "service": "teesweep"}


@router.get("/")
async def root() -> dict[str, str | dict[str, str]]:
    return {
        "service": "TeeSweep - Golf Tee Time Sniper",
        "version": "0.1.0",
        "endpoints": {
            "health": "/health",
            "reservations": "/reservations",
            "cancel": "/reservations/cancel",
            "sweep": "/jobs/sweep",
        },
    }
