from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.errors import TeeSweepError
from app.models.chronogolf import Affiliation, Course, Reservation, TeeTime


@dataclass
class BookingResult:
    success: bool
    booked_time: str | None = None
    confirmation_number: str | None = None
    error_message: str | None = None
    error: TeeSweepError | None = None


class ReservationProvider(ABC):
    """Abstract base class for golf course reservation providers."""

    @abstractmethod
    async def ensure_logged_in(self) -> None:
        """Authenticate with the booking system if the session is missing or stale."""
        pass

    @abstractmethod
    async def affiliation(self) -> Affiliation:
        """Membership record of the logged-in user at the configured course."""
        pass

    @abstractmethod
    async def course(self) -> Course:
        pass

    @abstractmethod
    async def tee_times(
        self, affiliation: Affiliation, course: Course, day: str, num_players: int
    ) -> list[TeeTime]:
        """Tee times offered on the calendar day of day for num_players."""
        pass

    @abstractmethod
    async def reserve(
        self, affiliation: Affiliation, course: Course, tee_time: TeeTime, num_players: int
    ) -> Reservation:
        pass

    @abstractmethod
    async def upcoming_reservations(self) -> list[Reservation]:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
