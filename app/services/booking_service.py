"""
Booking service for reserving tee times.

This module turns one pending request into one booking attempt against the
reservation provider: find the member's affiliation and the course, list the
day's tee times, pick the first slot at or after the requested time and
reserve it for the whole party.
"""

import logging

from app.errors import NoTeeTimesAvailable, TeeSweepError
from app.models.chronogolf import Reservation, TeeTime
from app.models.schemas import PendingRequest
from app.providers.base import BookingResult, ReservationProvider
from app.services.eligibility import parse_day
from app.services.sms_service import SMSService, sms_service

logger = logging.getLogger(__name__)


class BookingService:
    """
    Executes booking attempts through the reservation provider.

    A single attempt never retries: a failed attempt leaves the request in the
    queue and the next sweep tries again.

    Attributes:
        _reservation_provider: Provider for executing bookings on the club website.
        _notifier: SMS notifier for booking outcomes.
    """

    def __init__(
        self,
        provider: ReservationProvider | None = None,
        notifier: SMSService | None = None,
    ) -> None:
        self._reservation_provider = provider
        self._notifier = notifier or sms_service

    def set_reservation_provider(self, provider: ReservationProvider) -> None:
        """Set the reservation provider for executing bookings."""
        self._reservation_provider = provider

    @property
    def provider(self) -> ReservationProvider:
        if not self._reservation_provider:
            raise TeeSweepError("Reservation provider not configured")
        return self._reservation_provider

    async def book_first(self, day: str, num_players: int) -> tuple[TeeTime, Reservation]:
        """
        Reserve the earliest tee time at or after day for num_players.

        Args:
            day: Requested tee time as YYYY-MM-DDTHH:MM local time.
            num_players: Size of the party, including the member.

        Returns:
            The tee time that was reserved and the service's reservation record.

        Raises:
            AffiliationNotFound: The member has no affiliation at the course.
            CourseNotFound: The club lists no courses.
            NoTeeTimesAvailable: Nothing is offered at or after the requested time.
            InvalidDateFormat: day or a tee time's start could not be parsed.
            RemoteServiceError: The reservation service failed.
        """
        provider = self.provider
        target = parse_day(day)

        affiliation = await provider.affiliation()
        course = await provider.course()

        tee_times = await provider.tee_times(affiliation, course, day, num_players)
        if not tee_times:
            raise NoTeeTimesAvailable(f"no tee times found on {day[:10]}")

        # The listing covers the whole day; earlier slots are not what was asked for.
        candidates = [tt for tt in tee_times if parse_day(tt.day) >= target]
        if not candidates:
            raise NoTeeTimesAvailable(f"no tee times found at or after {day}")

        tee_time = candidates[0]
        logger.info(f"Reserving tee time {tee_time.id} at {tee_time.day} for {num_players} players")
        reservation = await provider.reserve(affiliation, course, tee_time, num_players)
        return tee_time, reservation

    async def attempt(self, day: str, num_players: int) -> BookingResult:
        """Run one booking attempt and report the outcome instead of raising."""
        try:
            tee_time, reservation = await self.book_first(day, num_players)
        except TeeSweepError as e:
            logger.warning(f"Booking {day} for {num_players} players failed: {e}")
            return BookingResult(success=False, error_message=str(e), error=e)

        confirmation_number = str(reservation.id) if reservation.id is not None else None
        if confirmation_number is None:
            logger.warning(
                f"Reservation for {tee_time.day} returned no reservation id; "
                "treating the accepted request as booked"
            )
        return BookingResult(
            success=True,
            booked_time=tee_time.day,
            confirmation_number=confirmation_number,
        )

    async def execute(self, request: PendingRequest) -> BookingResult:
        """
        Attempt a queued request and text the outcome.

        Used as the per-item attempt of a queue sweep. A notification failure is
        logged and never changes the booking outcome.
        """
        result = await self.attempt(request.day, request.players)

        details = f"{request.day} for {request.players} players"
        try:
            if result.success:
                details = f"{result.booked_time} for {request.players} players"
                if result.confirmation_number:
                    details += f" (Confirmation: {result.confirmation_number})"
                await self._notifier.send_booking_confirmation(details)
            else:
                await self._notifier.send_booking_failure(
                    details, result.error_message or "Unknown error"
                )
        except Exception as e:
            logger.exception(f"Failed to send booking notification for {details}: {e}")
        return result

    async def upcoming_reservations(self) -> list[Reservation]:
        return await self.provider.upcoming_reservations()
