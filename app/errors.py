"""
Error taxonomy for queueing and booking tee times.

Every failure the sweep, the queue file or the reservation service can produce
maps to one of these types, so callers can decide per type whether to retry,
report to the user or stop the process.
"""


class TeeSweepError(Exception):
    """Base class for all application errors."""


class InvalidDateFormat(TeeSweepError, ValueError):
    """A day string did not match the YYYY-MM-DDTHH:MM format."""

    def __init__(self, value: str) -> None:
        super().__init__(f"invalid day {value!r}: expected YYYY-MM-DDTHH:MM")
        self.value = value


class DuplicateRequest(TeeSweepError):
    """The exact (day, players) pair is already queued."""


class PersistenceError(TeeSweepError):
    """Reading or writing the queue file failed."""


class StaleFormatVersion(TeeSweepError):
    """The queue file was written by an incompatible version of the format."""

    def __init__(self, found: int | None, expected: int) -> None:
        super().__init__(
            f"queue file format version ({found}) does not match current ({expected})"
        )
        self.found = found
        self.expected = expected


class AffiliationNotFound(TeeSweepError):
    """The logged-in user has no membership at the configured course."""


class CourseNotFound(TeeSweepError):
    """The club returned an empty course list."""


class NoTeeTimesAvailable(TeeSweepError):
    """No tee time at or after the requested time was offered."""


class ConfigNotFound(TeeSweepError):
    """The embedded app config (and its CSRF token) was missing from the landing page."""


class RemoteServiceError(TeeSweepError):
    """The reservation service failed, timed out or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        detail = message
        if status_code is not None:
            detail += f" (status {status_code})"
        if body:
            detail += f": {body[:500]}"
        super().__init__(detail)
        self.status_code = status_code
        self.body = body
