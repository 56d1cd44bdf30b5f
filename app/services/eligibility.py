"""
Booking window calculations.

The reservation site opens a tee sheet a fixed number of calendar days before
the day of play, at local midnight. Everything here is pure: "now" is always
passed in, so sweeps and tests can evaluate any instant.
"""

from collections.abc import Callable
from datetime import datetime, time, timedelta

import pytz

from app.config import settings
from app.errors import InvalidDateFormat

DAY_FORMAT = "%Y-%m-%dT%H:%M"

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current time in the configured timezone."""
    return datetime.now(pytz.timezone(settings.timezone))


def to_local(value: datetime) -> datetime:
    """Interpret naive datetimes as local wall-clock time; convert aware ones."""
    tz = pytz.timezone(settings.timezone)
    if value.tzinfo is None:
        return tz.localize(value)
    return value.astimezone(tz)


def parse_day(day: str) -> datetime:
    """Parse a YYYY-MM-DDTHH:MM string as local wall-clock time."""
    try:
        naive = datetime.strptime(day, DAY_FORMAT)
    except (TypeError, ValueError) as e:
        raise InvalidDateFormat(str(day)) from e
    return to_local(naive)


def format_day(value: datetime) -> str:
    return value.strftime(DAY_FORMAT)


def truncate_to_day(value: datetime) -> datetime:
    """Local midnight of the calendar day containing value."""
    return to_local(datetime.combine(to_local(value).date(), time.min))


def booking_opens_at(day: str, days_can_book: int | None = None) -> datetime:
    """
    Instant at which the tee sheet for day becomes bookable.

    Subtraction happens on the calendar date before localizing, so a DST change
    inside the window does not shift the opening away from midnight.
    """
    days = settings.days_can_book if days_can_book is None else days_can_book
    opens_on = truncate_to_day(parse_day(day)).date() - timedelta(days=days)
    return to_local(datetime.combine(opens_on, time.min))


def is_bookable(day: str, now: datetime, days_can_book: int | None = None) -> bool:
    """True once now has reached the opening of the booking window for day."""
    return booking_opens_at(day, days_can_book) <= to_local(now)


def default_booking_day(now: datetime) -> str:
    """
    Suggested day for a new request: just beyond the current booking window.

    The request will sit in the queue and be booked the moment its window opens.
    """
    target = to_local(now).date() + timedelta(days=settings.days_can_book + 1)
    suggested = datetime.combine(target, time(settings.default_hour, settings.default_minute))
    return format_day(suggested)
