"""
Pending queue of booking requests, persisted to a single JSON file.

The file is the source of truth across restarts. Every mutation and every
sweep holds one lock for the whole read-modify-persist cycle, so a timer sweep,
a post-submit sweep and a cancel never interleave.
"""

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

from pydantic import ValidationError

from app.config import settings
from app.errors import DuplicateRequest, InvalidDateFormat, PersistenceError, StaleFormatVersion
from app.models.schemas import (
    QUEUE_FORMAT_VERSION,
    PendingRequest,
    QueueState,
    SweepItem,
    SweepItemStatus,
    SweepReport,
    SweepTrigger,
)
from app.providers.base import BookingResult
from app.services.eligibility import Clock, is_bookable, local_now

logger = logging.getLogger(__name__)

BookingAttempt = Callable[[PendingRequest], Awaitable[BookingResult]]


class PendingQueue:
    """
    Ordered, duplicate-free queue of pending booking requests.

    Attributes:
        path: Location of the JSON queue file.
    """

    def __init__(self, path: str | Path | None = None, clock: Clock = local_now) -> None:
        self.path = Path(path or settings.data_file)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._pending: list[PendingRequest] = []

    @property
    def pending(self) -> list[PendingRequest]:
        return list(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def load(self) -> None:
        """
        Replace the in-memory queue with the contents of the queue file.

        A missing file is an empty queue. The format version is checked before
        any request is decoded.

        Raises:
            StaleFormatVersion: The file was written with another format version.
            PersistenceError: The file could not be read or decoded.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"Queue file {self.path} doesn't exist, starting with an empty queue")
            self._pending = []
            return
        except OSError as e:
            raise PersistenceError(f"failed to read {self.path}: {e}") from e

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not contain a queue object")

        version = data.get("formatVersion")
        if version != QUEUE_FORMAT_VERSION:
            raise StaleFormatVersion(version, QUEUE_FORMAT_VERSION)

        try:
            state = QueueState.model_validate(data)
        except ValidationError as e:
            raise PersistenceError(f"{self.path} contains invalid requests: {e}") from e

        self._pending = list(dict.fromkeys(state.pending))
        logger.info(f"Loaded {len(self._pending)} pending requests from {self.path}")

    def save(self) -> None:
        """Write the queue to a temp file and atomically replace the queue file."""
        state = QueueState(format_version=QUEUE_FORMAT_VERSION, pending=self._pending)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(state.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"failed to save pending to {self.path}: {e}") from e

    async def snapshot(self) -> list[PendingRequest]:
        async with self._lock:
            return list(self._pending)

    async def add(self, request: PendingRequest) -> None:
        """
        Append a request and persist the queue.

        Raises:
            DuplicateRequest: An equal request is already queued.
            PersistenceError: Saving failed. The request stays queued in memory.
        """
        async with self._lock:
            if request in self._pending:
                raise DuplicateRequest(
                    f"{request.day} for {request.players} players is already queued"
                )
            self._pending.append(request)
            self.save()
        logger.info(f"Queued {request.day} for {request.players} players")

    async def clear(self) -> int:
        """Drop every pending request and persist. Returns how many were dropped."""
        async with self._lock:
            cleared = len(self._pending)
            self._pending = []
            self.save()
        logger.info(f"Cancelled {cleared} pending requests")
        return cleared

    async def sweep(
        self, attempt: BookingAttempt, trigger: SweepTrigger = SweepTrigger.TIMER
    ) -> SweepReport:
        """
        Attempt every request whose booking window has opened.

        Requests that are not yet bookable, have an unparseable day or whose
        attempt failed stay queued for the next sweep; booked requests are
        removed. The queue is persisted only when something was removed.

        Args:
            attempt: Books one request and reports the outcome.
            trigger: What started this sweep, for the report.

        Returns:
            Per-request outcome of the sweep.
        """
        async with self._lock:
            now = self._clock()
            report = SweepReport(executed_at=now, trigger=trigger)
            logger.info(f"Sweeping {len(self._pending)} pending requests ({trigger.value})")

            retained: list[PendingRequest] = []
            for request in self._pending:
                try:
                    bookable = is_bookable(request.day, now)
                except InvalidDateFormat as e:
                    logger.error(f"Skipping pending request: {e}")
                    retained.append(request)
                    report.items.append(self._item(request, SweepItemStatus.INVALID, error=str(e)))
                    continue

                if not bookable:
                    retained.append(request)
                    report.items.append(self._item(request, SweepItemStatus.NOT_YET_BOOKABLE))
                    continue

                try:
                    result = await attempt(request)
                except Exception as e:
                    logger.exception(f"Booking attempt for {request.day} raised: {e}")
                    result = BookingResult(success=False, error_message=str(e))

                if result.success:
                    report.items.append(
                        self._item(
                            request,
                            SweepItemStatus.BOOKED,
                            tee_time=result.booked_time,
                            confirmation_number=result.confirmation_number,
                        )
                    )
                else:
                    retained.append(request)
                    report.items.append(
                        self._item(request, SweepItemStatus.FAILED, error=result.error_message)
                    )

            if len(retained) != len(self._pending):
                self._pending = retained
                try:
                    self.save()
                except PersistenceError as e:
                    logger.error(f"Sweep result not persisted: {e}")

            report.remaining = len(self._pending)
            return report

    @staticmethod
    def _item(request: PendingRequest, status: SweepItemStatus, **kwargs: str | None) -> SweepItem:
        return SweepItem(day=request.day, players=request.players, status=status, **kwargs)
