"""
Daily sweep scheduler.

The timer is an APScheduler cron job on the application's event loop: it
sweeps the pending queue every day at the configured wall-clock time and is
shut down with the application lifespan. Submit-triggered and manual sweeps
call the same run_sweep entry point and serialize on the queue lock.
"""

import logging
from datetime import datetime, time, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.models.schemas import SweepReport, SweepTrigger
from app.services.booking_service import BookingService
from app.services.eligibility import Clock, local_now, to_local
from app.services.queue_service import PendingQueue

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "daily-sweep"


class SweepScheduler:
    def __init__(
        self,
        queue: PendingQueue,
        booking_service: BookingService,
        clock: Clock = local_now,
        run_at: time | None = None,
    ) -> None:
        self._queue = queue
        self._booking_service = booking_service
        self._clock = clock
        self.run_at = run_at or time(settings.sweep_hour, settings.sweep_minute)
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def trigger(self) -> CronTrigger:
        return CronTrigger(
            hour=self.run_at.hour, minute=self.run_at.minute, timezone=settings.timezone
        )

    async def run_sweep(self, trigger: SweepTrigger = SweepTrigger.MANUAL) -> SweepReport:
        report = await self._queue.sweep(self._booking_service.execute, trigger)
        logger.info(
            f"Sweep ({trigger.value}) finished: {report.booked} booked, "
            f"{report.failed} failed, {report.remaining} still pending"
        )
        return report

    def next_run_time(self, after: datetime | None = None) -> datetime:
        """First occurrence of the daily run time strictly after the given instant."""
        after = to_local(after or self._clock())
        fire_time = self.trigger().get_next_fire_time(None, after + timedelta(microseconds=1))
        return to_local(fire_time)

    async def _scheduled_sweep(self) -> None:
        try:
            await self.run_sweep(SweepTrigger.TIMER)
        except Exception as e:
            logger.exception(f"Scheduled sweep failed: {e}")

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone=settings.timezone)
        self._scheduler.add_job(
            self._scheduled_sweep,
            trigger=self.trigger(),
            id=SWEEP_JOB_ID,
            name="Sweep pending tee time requests",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"Daily sweep scheduled at {self.run_at.strftime('%H:%M')} {settings.timezone}, "
            f"next run {self.next_run_time().isoformat()}"
        )

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Daily sweep scheduler shut down")
