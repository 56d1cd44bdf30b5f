from dataclasses import dataclass, field

from fastapi import HTTPException, Request

from app.services.booking_service import BookingService
from app.services.eligibility import Clock, local_now
from app.services.queue_service import PendingQueue
from app.services.scheduler import SweepScheduler


@dataclass
class AppContext:
    """Server state shared by request handlers, owned by the application lifespan."""

    queue: PendingQueue
    booking_service: BookingService
    scheduler: SweepScheduler
    clock: Clock = field(default=local_now)


def get_context(request: Request) -> AppContext:
    context: AppContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service is not started")
    return context
