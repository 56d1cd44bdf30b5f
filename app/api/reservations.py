from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.context import AppContext, get_context
from app.errors import DuplicateRequest, InvalidDateFormat, PersistenceError, TeeSweepError
from app.models.chronogolf import Reservation
from app.models.schemas import PendingRequest, SweepTrigger
from app.services.eligibility import booking_opens_at, default_booking_day, format_day, parse_day

router = APIRouter(prefix="/reservations", tags=["reservations"])


class CreateReservationRequest(BaseModel):
    day: str = Field(..., description="Earliest acceptable tee time, YYYY-MM-DDTHH:MM")
    players: int = Field(default=4, ge=1)

    @field_validator("day")
    @classmethod
    def normalize_day(cls, value: str) -> str:
        return format_day(parse_day(value))


class PendingResponse(BaseModel):
    day: str
    players: int
    bookable_from: str | None = None


class UpcomingReservationResponse(BaseModel):
    id: int | None
    tee_time: str | None
    holes: int | None
    players: int
    state: str | None


class StatusResponse(BaseModel):
    reservations: list[UpcomingReservationResponse]
    pending: list[PendingResponse]
    default_day: str
    days_can_book: int


def _pending_response(request: PendingRequest) -> PendingResponse:
    try:
        bookable_from = booking_opens_at(request.day).isoformat()
    except InvalidDateFormat:
        bookable_from = None
    return PendingResponse(day=request.day, players=request.players, bookable_from=bookable_from)


def _reservation_response(reservation: Reservation) -> UpcomingReservationResponse:
    return UpcomingReservationResponse(
        id=reservation.id,
        tee_time=reservation.teetime.day if reservation.teetime else None,
        holes=reservation.holes,
        players=len(reservation.rounds),
        state=reservation.state,
    )


@router.get("/", response_model=StatusResponse)
async def get_status(context: AppContext = Depends(get_context)) -> StatusResponse:
    """Confirmed upcoming reservations from the club plus the local pending queue."""
    try:
        upcoming = await context.booking_service.upcoming_reservations()
    except TeeSweepError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch reservations: {e}") from e

    pending = await context.queue.snapshot()
    return StatusResponse(
        reservations=[_reservation_response(r) for r in upcoming],
        pending=[_pending_response(p) for p in pending],
        default_day=default_booking_day(context.clock()),
        days_can_book=settings.days_can_book,
    )


@router.post("/", response_model=PendingResponse, status_code=201)
async def create_reservation(
    request: CreateReservationRequest,
    background_tasks: BackgroundTasks,
    context: AppContext = Depends(get_context),
) -> PendingResponse:
    """
    Queue a booking request and sweep the queue right after responding.

    Raises:
        HTTPException 400: The same day and player count is already queued.
        HTTPException 500: The queue file could not be written.
    """
    pending = PendingRequest(day=request.day, players=request.players)
    try:
        await context.queue.add(pending)
    except DuplicateRequest as e:
        raise HTTPException(status_code=400, detail="Reservation already exists") from e
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save pending: {e}") from e

    background_tasks.add_task(context.scheduler.run_sweep, SweepTrigger.SUBMIT)
    return _pending_response(pending)


@router.post("/cancel")
async def cancel_reservations(context: AppContext = Depends(get_context)) -> dict[str, str | int]:
    """Drop every pending request. Confirmed reservations are not touched."""
    try:
        cleared = await context.queue.clear()
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save pending: {e}") from e
    return {"status": "cancelled", "cleared": cleared}
