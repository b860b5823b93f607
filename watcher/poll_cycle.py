"""
Poll cycle controller.

Owns the baseline (the last accepted lesson list of the tracked date) and
decides, cycle by cycle, whether to adopt, compare or discard it. Cycle
errors are counted; reaching the configured threshold marks the result as
fatal so the service can shut down.
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple

import structlog

from untis.errors import SchemaMismatchError
from watcher.alerting import AlertManager
from watcher.change_detector import ChangeDetector
from watcher.extractor import extract_all_lessons
from watcher.models import (
    Baseline, BaselineState, CycleResult, LessonChange, LessonInfo, NoBaseline, PollConfig
)
from utilities.logger import CycleLogger

logger = structlog.get_logger(__name__)


def relevant_date(now: datetime, tz: tzinfo, rollover_hour: int = 18) -> date:
    """
    Date whose lessons matter at ``now``.

    From ``rollover_hour`` local time on, today is over and tomorrow is
    previewed instead. Naive ``now`` values are taken as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(tz)
    day = local.date()
    if local.hour >= rollover_hour:
        day += timedelta(days=1)
    return day


class PollCycleController:
    """Baseline state machine driven by one fetch per cycle."""

    def __init__(
        self,
        client,
        alert_manager: AlertManager,
        config: PollConfig,
        change_detector: Optional[ChangeDetector] = None
    ):
        """
        Initialize the controller.

        Args:
            client: Timetable client exposing ``is_session_expired``,
                ``authenticate`` and ``fetch_day``
            alert_manager: Notification sink
            config: Poll configuration
            change_detector: Diff engine (a default one is created when omitted)
        """
        self.client = client
        self.alert_manager = alert_manager
        self.config = config
        self.timezone = config.get_timezone()
        self.change_detector = change_detector or ChangeDetector()
        self.state: BaselineState = NoBaseline()
        self.consecutive_failures = 0
        self.logger = logger.bind(component="poll_cycle")
        self.cycle_logger = CycleLogger("poll_cycle").bind_context(resource_id=config.resource_id)

    @property
    def baseline(self) -> Optional[Baseline]:
        if isinstance(self.state, Baseline):
            return self.state
        return None

    @property
    def state_name(self) -> str:
        if isinstance(self.state, Baseline):
            return f"baseline({self.state.date})"
        return "no_baseline"

    def reset_baseline(self) -> None:
        self.state = NoBaseline()

    async def ensure_session(self, now: datetime) -> None:
        """Re-authenticate when the session is missing or too old."""
        if self.client.is_session_expired(now):
            reason = "expired" if getattr(self.client, "session", None) else "missing"
            self.cycle_logger.log_session_refresh(reason)
            await self.client.authenticate()

    async def fetch_lessons(self, day: date, now: datetime) -> List[LessonInfo]:
        """Fetch one day and project its entries."""
        await self.ensure_session(now)
        timetable_day = await self.client.fetch_day(day, self.config.resource_id)
        return extract_all_lessons(timetable_day)

    def advance(self, today: date, lessons: List[LessonInfo]) -> Tuple[List[LessonChange], bool]:
        """
        Apply a freshly projected lesson list to the baseline.

        Returns:
            The changes to notify and whether the baseline was replaced or
            invalidated

        Raises:
            ShapeMismatchError: same date but a different number of lessons;
                the baseline is left untouched
        """
        state = self.state

        if isinstance(state, NoBaseline):
            self.state = Baseline(date=today, lessons=tuple(lessons))
            self.logger.info("Adopted new baseline", date=str(today), lessons=len(lessons))
            return [], True

        if state.date != today:
            self.state = Baseline(date=today, lessons=tuple(lessons))
            self.logger.info(
                "Date rolled over, baseline replaced",
                previous_date=str(state.date),
                date=str(today),
                lessons=len(lessons)
            )
            return [], True

        result = self.change_detector.detect_changes(state.lessons, lessons)
        if result.changed:
            # Next cycle starts from a fresh reference point
            self.state = NoBaseline()
            return result.changes, True

        return [], False

    async def run_cycle(self, now: Optional[datetime] = None) -> CycleResult:
        """
        Run one full cycle: fetch, project, compare, notify.

        Never raises for cycle errors; they are reported to the sink and
        reflected in the returned result.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        started_at = datetime.now(timezone.utc)
        today = relevant_date(now, self.timezone, self.config.rollover_hour)

        self.cycle_logger.log_cycle_start(str(today), self.state_name)

        try:
            lessons = await self.fetch_lessons(today, now)
            changes, baseline_reset = self.advance(today, lessons)
        except Exception as e:
            return await self._handle_failure(e, today, started_at)

        self.consecutive_failures = 0

        for change in changes:
            self.cycle_logger.log_change(
                change.change_type.value,
                change.lesson.subject,
                change.lesson.datetime.isoformat()
            )
            await self.alert_manager.notify(change)

        duration = (datetime.now(timezone.utc) - started_at).total_seconds()
        self.cycle_logger.log_cycle_complete(str(today), len(lessons), len(changes), duration)

        return CycleResult(
            started_at=started_at,
            poll_date=today,
            success=True,
            lessons=len(lessons),
            changes=changes,
            baseline_reset=baseline_reset,
            consecutive_failures=0,
            duration_seconds=duration
        )

    async def _handle_failure(self, error: Exception, today: date, started_at: datetime) -> CycleResult:
        self.consecutive_failures += 1
        limit = self.config.max_consecutive_failures
        fatal = isinstance(error, SchemaMismatchError) or self.consecutive_failures >= limit
        message = f"{type(error).__name__}: {error}"

        self.cycle_logger.log_error(message, self.consecutive_failures)
        await self.alert_manager.send_error(
            f"Poll cycle for {today} failed ({self.consecutive_failures}/{limit}): {message}"
        )

        return CycleResult(
            started_at=started_at,
            poll_date=today,
            success=False,
            error=message,
            consecutive_failures=self.consecutive_failures,
            fatal=fatal,
            duration_seconds=(datetime.now(timezone.utc) - started_at).total_seconds()
        )
