import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api import health, jobs, reservations
from app.config import settings
from app.context import AppContext
from app.providers.base import ReservationProvider
from app.providers.chronogolf_provider import ChronogolfProvider, MockChronogolfProvider
from app.services.booking_service import BookingService
from app.services.queue_service import PendingQueue
from app.services.scheduler import SweepScheduler

logger = logging.getLogger(__name__)


async def create_provider() -> ReservationProvider:
    if settings.chronogolf_email and settings.chronogolf_password:
        logger.info("Chronogolf credentials configured - using real ChronogolfProvider")
        provider = ChronogolfProvider()
        try:
            await provider.ensure_logged_in()
        except BaseException:
            await provider.close()
            raise
        return provider

    logger.warning(
        "Chronogolf credentials not configured - using MockChronogolfProvider. "
        "Set CHRONOGOLF_EMAIL and CHRONOGOLF_PASSWORD for real bookings."
    )
    return MockChronogolfProvider()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # A stale or unreadable queue file aborts startup here.
    queue = PendingQueue(settings.data_file)
    queue.load()

    if not settings.scheduler_api_key and not settings.scheduler_service_account:
        logger.warning(
            "Neither SCHEDULER_API_KEY nor SCHEDULER_SERVICE_ACCOUNT is configured. "
            "The /jobs/sweep endpoint only accepts OIDC tokens from any service account."
        )

    provider = await create_provider()
    booking_service = BookingService(provider)
    scheduler = SweepScheduler(queue, booking_service)
    app.state.context = AppContext(
        queue=queue, booking_service=booking_service, scheduler=scheduler
    )
    scheduler.start()

    try:
        yield
    finally:
        await scheduler.stop()
        await provider.close()
        app.state.context = None


app = FastAPI(
    title="TeeSweep",
    description="Books golf tee times the moment their booking window opens",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(reservations.router)
app.include_router(jobs.router)
