"""
Test cases for the watcher service (scheduling shell around the poll cycle).
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from untis.errors import SchemaMismatchError, TransportError
from untis.models import Day
from watcher.models import PollConfig
from watcher.scheduler_service import POLL_JOB_ID, WatcherService, next_poll_interval


@pytest.fixture
def regular_day(entry_factory):
    return Day.model_validate({
        "date": "2024-05-13",
        "status": "REGULAR",
        "gridEntries": [entry_factory()],
    })


@pytest.fixture
def service(poll_config, mock_untis_client, mock_alert_manager):
    return WatcherService(poll_config, mock_untis_client, mock_alert_manager)


class TestPollInterval:
    """Test cases for the time-of-day dependent cadence."""

    def setup_method(self):
        self.config = PollConfig(resource_id=1, timezone="Europe/Berlin")

    def test_school_hours(self):
        # Monday 10:00 Berlin
        now = datetime(2024, 5, 13, 8, 0, tzinfo=timezone.utc)
        assert next_poll_interval(now, self.config) == timedelta(seconds=120)

    def test_start_of_active_window(self):
        # Monday 06:00 Berlin
        now = datetime(2024, 5, 13, 4, 0, tzinfo=timezone.utc)
        assert next_poll_interval(now, self.config) == timedelta(seconds=120)

    def test_evening(self):
        # Monday 19:00 Berlin
        now = datetime(2024, 5, 13, 17, 0, tzinfo=timezone.utc)
        assert next_poll_interval(now, self.config) == timedelta(seconds=900)

    def test_weekend(self):
        # Saturday 10:00 Berlin
        now = datetime(2024, 5, 18, 8, 0, tzinfo=timezone.utc)
        assert next_poll_interval(now, self.config) == timedelta(seconds=900)

    def test_test_mode_interval(self, service):
        service.test_mode = True
        now = datetime(2024, 5, 13, 8, 0, tzinfo=timezone.utc)
        assert service.poll_interval(now) == timedelta(seconds=30)


class TestRunOnce:
    """Test cases for the single-cycle mode."""

    @pytest.mark.asyncio
    async def test_successful_cycle(self, service, mock_untis_client, mock_alert_manager, regular_day):
        mock_untis_client.fetch_day.return_value = regular_day

        exit_code = await service.start(run_once=True)

        assert exit_code == 0
        assert service.last_result.success is True
        mock_alert_manager.send_shutdown.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_cycle(self, service, mock_untis_client, mock_alert_manager):
        mock_untis_client.fetch_day.side_effect = TransportError("503", status_code=503)

        exit_code = await service.start(run_once=True)

        assert exit_code == 1
        mock_alert_manager.send_error.assert_awaited_once()
        mock_alert_manager.send_shutdown.assert_not_called()

    @pytest.mark.asyncio
    async def test_fatal_cycle_sends_shutdown(self, service, mock_untis_client, mock_alert_manager):
        mock_untis_client.fetch_day.side_effect = SchemaMismatchError(19, 20)

        exit_code = await service.start(run_once=True)

        assert exit_code == 1
        assert service.exit_code == 1
        mock_alert_manager.send_shutdown.assert_awaited_once()


class TestPollCycleJob:
    """Test cases for the scheduled job."""

    @pytest.mark.asyncio
    async def test_job_reschedules(self, service, mock_untis_client, regular_day):
        mock_untis_client.fetch_day.return_value = regular_day
        service.test_mode = True

        with patch.object(service, "schedule_next_cycle") as mock_schedule:
            result = await service._poll_cycle_job()

        assert result.success is True
        mock_schedule.assert_called_once_with(timedelta(seconds=30))

    @pytest.mark.asyncio
    async def test_job_reschedules_after_failure(self, service, mock_untis_client):
        mock_untis_client.fetch_day.side_effect = TransportError("timeout", retryable=True)

        with patch.object(service, "schedule_next_cycle") as mock_schedule:
            result = await service._poll_cycle_job()

        assert result.success is False
        assert result.fatal is False
        mock_schedule.assert_called_once()

    @pytest.mark.asyncio
    async def test_fatal_job_stops_service(self, service, mock_untis_client, mock_alert_manager):
        mock_untis_client.fetch_day.side_effect = SchemaMismatchError(19, 20)
        service._shutdown_event = asyncio.Event()

        with patch.object(service, "schedule_next_cycle") as mock_schedule:
            await service._poll_cycle_job()

        mock_schedule.assert_not_called()
        assert service._shutdown_event.is_set()
        assert service.exit_code == 1
        message = mock_alert_manager.send_shutdown.await_args.args[0]
        assert "SchemaMismatchError" in message

    @pytest.mark.asyncio
    async def test_crashing_cycle_is_rescheduled(self, service):
        service.controller.run_cycle = MagicMock(side_effect=RuntimeError("unexpected"))

        with patch.object(service, "schedule_next_cycle") as mock_schedule:
            result = await service._poll_cycle_job()

        assert result is None
        mock_schedule.assert_called_once()


class TestDaemon:
    """Test cases for the long-running mode."""

    @pytest.mark.asyncio
    async def test_schedule_next_cycle_replaces_job(self, service):
        service.scheduler.start(paused=True)
        try:
            service.schedule_next_cycle(timedelta(seconds=60))
            service.schedule_next_cycle(timedelta(seconds=120))

            jobs = service.scheduler.get_jobs()
            assert [job.id for job in jobs] == [POLL_JOB_ID]
            assert service.get_status()["next_run_time"] is not None
        finally:
            service.stop()

    def test_status(self, service):
        status = service.get_status()

        assert status["running"] is False
        assert status["timezone"] == "Europe/Berlin"
        assert status["baseline_date"] is None
        assert status["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_start_runs_first_cycle_and_stops(self, service, mock_untis_client, regular_day):
        mock_untis_client.fetch_day.return_value = regular_day

        with patch.object(service, "_setup_signal_handlers"):
            task = asyncio.create_task(service.start(test_mode=True))

            for _ in range(100):
                if mock_untis_client.fetch_day.await_count:
                    break
                await asyncio.sleep(0.02)

            service.request_shutdown()
            exit_code = await asyncio.wait_for(task, timeout=5)

        assert exit_code == 0
        mock_untis_client.fetch_day.assert_awaited()
        assert service.scheduler.running is False

    @pytest.mark.asyncio
    async def test_late_cycle_still_runs(self, service, mock_untis_client, regular_day):
        mock_untis_client.fetch_day.return_value = regular_day
        service.schedule_next_cycle(timedelta(seconds=-5))
        service.scheduler.start()

        try:
            for _ in range(100):
                if mock_untis_client.fetch_day.await_count:
                    break
                await asyncio.sleep(0.02)

            mock_untis_client.fetch_day.assert_awaited()
            # The chain continues with the next cycle
            for _ in range(50):
                if service.scheduler.get_job(POLL_JOB_ID) is not None:
                    break
                await asyncio.sleep(0.02)
            assert service.scheduler.get_job(POLL_JOB_ID) is not None
        finally:
            service.stop()
