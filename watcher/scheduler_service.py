"""
Main watcher service.

This module provides:
- Poll scheduling with APScheduler (one cycle at a time)
- Time-of-day dependent cadence
- Fatal shutdown after too many consecutive failures
- Graceful shutdown on signals
"""

import asyncio
import signal
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR

from watcher.alerting import AlertManager
from watcher.models import CycleResult, PollConfig
from watcher.poll_cycle import PollCycleController

logger = structlog.get_logger(__name__)

POLL_JOB_ID = "poll_cycle"


def next_poll_interval(now: datetime, config: PollConfig) -> timedelta:
    """
    Delay until the next cycle.

    Weekdays between ``active_start_hour`` and ``active_end_hour`` local time
    use the short interval, everything else the long one.
    """
    local = now.astimezone(config.get_timezone())
    is_weekday = local.weekday() < 5
    if is_weekday and config.active_start_hour <= local.hour < config.active_end_hour:
        return timedelta(seconds=config.active_poll_interval)
    return timedelta(seconds=config.idle_poll_interval)


class WatcherService:
    """Scheduler service that runs poll cycles back to back."""

    def __init__(self, config: PollConfig, client, alert_manager: AlertManager):
        """
        Initialize watcher service.

        Args:
            config: Poll configuration
            client: Timetable client
            alert_manager: Notification sink
        """
        self.config = config
        self.client = client
        self.alert_manager = alert_manager
        self.controller = PollCycleController(client, alert_manager, config)
        self.scheduler = AsyncIOScheduler(timezone=config.get_timezone())
        self.logger = logger.bind(component="watcher_service")
        self.test_mode = False
        self.exit_code = 0
        self._shutdown_event: Optional[asyncio.Event] = None
        self.last_result: Optional[CycleResult] = None

        self._setup_scheduler_listeners()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, shutting down gracefully...")
            self.request_shutdown()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Not available on Windows event loops
                pass

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            result = event.retval
            self.logger.debug(
                "Job executed",
                job_id=event.job_id,
                success=result.success if isinstance(result, CycleResult) else None
            )

        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)

    async def start(self, test_mode: bool = False, run_once: bool = False) -> int:
        """
        Start the watcher service.

        Returns:
            Process exit code (1 after a fatal shutdown)
        """
        self.test_mode = test_mode

        if run_once:
            self.logger.info("Starting watcher service in RUN ONCE MODE")
            result = await self.run_poll_cycle()
            if result.fatal:
                await self._fatal_shutdown(result)
            return 0 if result.success else 1

        if test_mode:
            self.logger.info("Starting watcher service in TEST MODE")
        else:
            self.logger.info("Starting watcher service")

        self._shutdown_event = asyncio.Event()
        self._setup_signal_handlers()

        self.schedule_next_cycle(timedelta(0))
        self.scheduler.start()

        self.logger.info(
            "Watcher service started",
            timezone=self.config.timezone,
            resource_id=self.config.resource_id,
            rollover_hour=self.config.rollover_hour
        )

        try:
            await self._shutdown_event.wait()
        finally:
            self.stop()

        return self.exit_code

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def stop(self) -> None:
        """Stop the scheduler."""
        try:
            self.logger.info("Stopping watcher service")

            if self.scheduler.running:
                self.scheduler.shutdown(wait=False)

            self.logger.info("Watcher service stopped")

        except Exception as e:
            self.logger.error(
                "Error stopping watcher service",
                error=str(e)
            )

    def poll_interval(self, now: datetime) -> timedelta:
        if self.test_mode:
            return timedelta(seconds=self.config.test_poll_interval)
        return next_poll_interval(now, self.config)

    def schedule_next_cycle(self, delay: timedelta) -> None:
        """(Re)schedule the single poll job ``delay`` from now."""
        run_date = datetime.now(timezone.utc) + delay
        self.scheduler.add_job(
            func=self._poll_cycle_job,
            trigger=DateTrigger(run_date=run_date),
            id=POLL_JOB_ID,
            name='Timetable Poll Cycle',
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
            replace_existing=True
        )
        self.logger.debug("Scheduled next poll cycle", run_date=run_date.isoformat())

    async def run_poll_cycle(self) -> CycleResult:
        """Run a single poll cycle and remember its result."""
        result = await self.controller.run_cycle()
        self.last_result = result
        return result

    async def _poll_cycle_job(self) -> Optional[CycleResult]:
        """Scheduled job: one cycle, then either reschedule or shut down."""
        try:
            result = await self.run_poll_cycle()
        except Exception as e:
            # The controller reports its own errors; this only guards the scheduler
            self.logger.error("Poll cycle job crashed", error=str(e), exc_info=True)
            self.schedule_next_cycle(self.poll_interval(datetime.now(timezone.utc)))
            return None

        if result.fatal:
            await self._fatal_shutdown(result)
            return result

        self.schedule_next_cycle(self.poll_interval(datetime.now(timezone.utc)))
        return result

    async def _fatal_shutdown(self, result: CycleResult) -> None:
        message = (
            f"Giving up after {result.consecutive_failures} consecutive failure(s). "
            f"Last error: {result.error}"
        )
        self.logger.critical("Fatal poll failure, shutting down", error=result.error)
        await self.alert_manager.send_shutdown(message)
        self.exit_code = 1
        self.request_shutdown()

    def get_status(self) -> Dict:
        """Get current watcher status."""
        job = self.scheduler.get_job(POLL_JOB_ID)
        next_run = getattr(job, 'next_run_time', None)
        baseline = self.controller.baseline
        return {
            'running': self.scheduler.running,
            'timezone': self.config.timezone,
            'baseline_date': baseline.date.isoformat() if baseline else None,
            'baseline_lessons': len(baseline.lessons) if baseline else 0,
            'consecutive_failures': self.controller.consecutive_failures,
            'next_run_time': next_run.isoformat() if next_run else None,
        }
