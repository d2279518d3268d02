"""
Tests for scheduler service.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

from apscheduler.triggers.interval import IntervalTrigger

from services.deadline_processor import TickReport
from services.scheduler_service import DEADLINE_TICK_JOB_ID, SchedulerService


class TestSchedulerService:
    """Test SchedulerService functionality."""

    @pytest.fixture
    def processor(self):
        processor = Mock()
        processor.run_tick = AsyncMock(return_value=TickReport(reminders_sent=2))
        return processor

    @pytest.fixture
    def scheduler_service(self, processor):
        """Create a SchedulerService instance for testing."""
        return SchedulerService(processor, SimpleNamespace(tick_interval_minutes=15))

    def test_scheduler_initialization(self, processor):
        """Test that scheduler service initializes correctly."""
        service = SchedulerService(processor, SimpleNamespace(tick_interval_minutes=15))

        assert service.processor == processor
        assert service.scheduler is not None
        assert service.tick_count == 0
        assert service.last_report is None

    def test_start_registers_interval_job(self, scheduler_service):
        """Test starting the scheduler."""
        # Replace scheduler with a mock
        mock_scheduler = Mock()
        mock_scheduler.running = False
        scheduler_service.scheduler = mock_scheduler

        scheduler_service.start()

        mock_scheduler.start.assert_called_once()
        kwargs = mock_scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == DEADLINE_TICK_JOB_ID
        assert isinstance(kwargs["trigger"], IntervalTrigger)
        assert kwargs["trigger"].interval.total_seconds() == 15 * 60
        assert kwargs["coalesce"] is True
        assert kwargs["max_instances"] == 1
        assert kwargs["misfire_grace_time"] == 15 * 60

    def test_start_scheduler_already_running(self, scheduler_service):
        """Test starting scheduler when already running."""
        mock_scheduler = Mock()
        mock_scheduler.running = True
        scheduler_service.scheduler = mock_scheduler

        scheduler_service.start()

        mock_scheduler.start.assert_not_called()
        mock_scheduler.add_job.assert_not_called()

    def test_shutdown_scheduler(self, scheduler_service):
        """Test shutting down the scheduler."""
        mock_scheduler = Mock()
        mock_scheduler.running = True
        scheduler_service.scheduler = mock_scheduler

        scheduler_service.shutdown()

        mock_scheduler.shutdown.assert_called_once()

    @pytest.mark.asyncio
    async def test_run_now(self, scheduler_service, processor):
        report = await scheduler_service.run_now()

        assert report.reminders_sent == 2
        processor.run_tick.assert_awaited_once()
        assert scheduler_service.tick_count == 1
        assert scheduler_service.last_report is report
        assert scheduler_service.last_run is not None

    @pytest.mark.asyncio
    async def test_tick_errors_are_logged_not_raised(self, scheduler_service, processor):
        processor.run_tick.side_effect = RuntimeError("store down")

        await scheduler_service._run_tick()

        assert scheduler_service.failed_ticks == 1
        assert scheduler_service.tick_count == 0

        # Next tick runs normally
        processor.run_tick.side_effect = None
        await scheduler_service._run_tick()
        assert scheduler_service.tick_count == 1

    def test_get_scheduler_stats(self, scheduler_service):
        """Test getting scheduler statistics."""
        mock_scheduler = Mock()
        mock_scheduler.running = True
        mock_scheduler.get_jobs.return_value = [Mock()]
        mock_scheduler.get_job.return_value = Mock(next_run_time="soon")
        scheduler_service.scheduler = mock_scheduler
        scheduler_service.last_report = TickReport(closures_completed=1)

        stats = scheduler_service.get_scheduler_stats()

        assert stats["total_jobs"] == 1
        assert stats["running"] is True
        assert stats["tick_interval_minutes"] == 15
        assert stats["next_run"] == "soon"
        assert stats["last_report"]["closures_completed"] == 1
