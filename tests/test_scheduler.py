"""
Tests for SweepScheduler in app/services/scheduler.py.
"""

import asyncio
import logging
from datetime import datetime, time
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import pytz
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.models.schemas import PendingRequest, SweepReport, SweepTrigger
from app.providers.chronogolf_provider import MockChronogolfProvider
from app.services.booking_service import BookingService
from app.services.queue_service import PendingQueue
from app.services.scheduler import SWEEP_JOB_ID, SweepScheduler


@pytest.fixture
def tz() -> pytz.BaseTzInfo:
    return pytz.timezone(settings.timezone)


def fixed_clock() -> datetime:
    return pytz.timezone(settings.timezone).localize(datetime(2018, 5, 10, 15, 30))


@pytest.fixture
def queue(tmp_path: Path) -> PendingQueue:
    return PendingQueue(tmp_path / "queue.json", clock=fixed_clock)


@pytest.fixture
def booking_service() -> BookingService:
    return BookingService(MockChronogolfProvider(), notifier=AsyncMock())


@pytest.fixture
def scheduler(queue: PendingQueue, booking_service: BookingService) -> SweepScheduler:
    return SweepScheduler(queue, booking_service, clock=fixed_clock, run_at=time(0, 0))


def empty_report(trigger: SweepTrigger) -> SweepReport:
    return SweepReport(executed_at=fixed_clock(), trigger=trigger, items=[], remaining=0)


class TestNextRunTime:
    """Tests for next_run_time."""

    def test_next_midnight(self, scheduler: SweepScheduler, tz: pytz.BaseTzInfo) -> None:
        """Test that the next run is the coming local midnight."""
        assert scheduler.next_run_time() == tz.localize(datetime(2018, 5, 11))

    def test_strictly_after(self, scheduler: SweepScheduler, tz: pytz.BaseTzInfo) -> None:
        """Test that a run exactly at the given instant schedules the following day."""
        midnight = tz.localize(datetime(2018, 5, 11))
        assert scheduler.next_run_time(after=midnight) == tz.localize(datetime(2018, 5, 12))

    def test_later_same_day(
        self, queue: PendingQueue, booking_service: BookingService, tz: pytz.BaseTzInfo
    ) -> None:
        """Test a run time that is still ahead today."""
        scheduler = SweepScheduler(queue, booking_service, clock=fixed_clock, run_at=time(18, 0))
        assert scheduler.next_run_time() == tz.localize(datetime(2018, 5, 10, 18, 0))

    def test_default_run_time_from_settings(
        self, queue: PendingQueue, booking_service: BookingService
    ) -> None:
        """Test that the run time defaults to the configured sweep time."""
        scheduler = SweepScheduler(queue, booking_service)
        assert scheduler.run_at == time(settings.sweep_hour, settings.sweep_minute)


class TestRunSweep:
    """Tests for run_sweep."""

    @pytest.mark.asyncio
    async def test_sweeps_queue_with_booking_service(
        self, scheduler: SweepScheduler, queue: PendingQueue
    ) -> None:
        """Test that a manual sweep books eligible requests through the provider."""
        await queue.add(PendingRequest(day="2018-05-17T07:10", players=4))
        await queue.add(PendingRequest(day="2018-06-30T07:10", players=4))

        report = await scheduler.run_sweep(SweepTrigger.MANUAL)

        assert report.trigger == SweepTrigger.MANUAL
        assert report.booked == 1
        assert report.items[0].tee_time == "2018-05-17T07:16"
        assert report.items[0].confirmation_number == "1"
        assert [r.day for r in queue.pending] == ["2018-06-30T07:10"]


class TestTimer:
    """Tests for the daily cron job."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler: SweepScheduler) -> None:
        """Test that the job scheduler can be started once and stopped cleanly."""
        scheduler.start()
        job_scheduler = scheduler._scheduler
        scheduler.start()

        assert scheduler.running
        assert scheduler._scheduler is job_scheduler

        await scheduler.stop()
        assert not scheduler.running
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_registers_daily_cron_job(
        self, queue: PendingQueue, booking_service: BookingService
    ) -> None:
        """Test that the sweep is registered as a cron job at the configured time."""
        scheduler = SweepScheduler(queue, booking_service, clock=fixed_clock, run_at=time(6, 30))
        scheduler.start()
        try:
            job = scheduler._scheduler.get_job(SWEEP_JOB_ID)

            assert job is not None
            assert isinstance(job.trigger, CronTrigger)
            assert "hour='6'" in str(job.trigger)
            assert "minute='30'" in str(job.trigger)
            assert job.max_instances == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_job_sweeps_with_timer_trigger(
        self, scheduler: SweepScheduler, tz: pytz.BaseTzInfo
    ) -> None:
        """Test that a fired job sweeps the queue with the timer trigger."""
        fired = asyncio.Event()

        async def record(trigger: SweepTrigger) -> SweepReport:
            fired.set()
            return empty_report(trigger)

        with patch.object(scheduler, "run_sweep", side_effect=record) as mock_sweep:
            scheduler.start()
            scheduler._scheduler.get_job(SWEEP_JOB_ID).modify(next_run_time=datetime.now(tz))
            await asyncio.wait_for(fired.wait(), timeout=5)
            await scheduler.stop()

        mock_sweep.assert_awaited_once_with(SweepTrigger.TIMER)

    @pytest.mark.asyncio
    async def test_failed_sweep_is_logged(
        self, scheduler: SweepScheduler, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an exception in a scheduled sweep is logged instead of raised."""
        with patch.object(
            scheduler, "run_sweep", AsyncMock(side_effect=RuntimeError("provider exploded"))
        ):
            with caplog.at_level(logging.ERROR, logger="app.services.scheduler"):
                await scheduler._scheduled_sweep()

        assert "Scheduled sweep failed: provider exploded" in caplog.text
