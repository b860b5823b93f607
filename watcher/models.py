"""
Models for lesson projection, change detection and the poll cycle.

This module defines Pydantic models for:
- Projected lessons (the comparable view of a grid entry)
- Classified lesson changes
- Poll cycle baseline state and results
- Poll and alert configurations
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import uuid

from pydantic import BaseModel, Field, validator

from untis.enums import Status


class ChangeType(str, Enum):
    """Types of lesson changes that can be detected."""
    LESSON_CANCELLATION = "lesson_cancellation"
    LESSON_CHANGE = "lesson_change"
    SUBJECT_CHANGED = "subject_changed"
    TEACHER_CHANGED = "teacher_changed"
    ROOM_CHANGED = "room_changed"
    NOTES_CHANGED = "notes_changed"

    @property
    def label(self) -> str:
        return CHANGE_TITLES[self]


CHANGE_TITLES = {
    ChangeType.LESSON_CANCELLATION: "Lesson Cancellation",
    ChangeType.LESSON_CHANGE: "Lesson Change",
    ChangeType.SUBJECT_CHANGED: "Subject Changed",
    ChangeType.TEACHER_CHANGED: "Teacher Changed",
    ChangeType.ROOM_CHANGED: "Room Changed",
    ChangeType.NOTES_CHANGED: "Notes Changed",
}


class ChangeSeverity(str, Enum):
    """Severity levels for changes."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return SEVERITY_ORDER[self]


SEVERITY_ORDER = {
    ChangeSeverity.LOW: 1,
    ChangeSeverity.MEDIUM: 2,
    ChangeSeverity.HIGH: 3,
}


class LessonInfo(BaseModel):
    """
    Flat, comparable view of one lesson.

    Optional text fields are None when the source string is blank after
    trimming, so that whitespace-only edits do not count as changes.
    """
    status: Status
    datetime: datetime
    subject: str
    subject_status: Status
    teacher: str
    teacher_status: Status
    room: str
    room_status: Status
    lesson_info: Optional[str] = None
    lesson_text: Optional[str] = None
    substitution_text: Optional[str] = None
    notes: Optional[str] = None
    texts: Tuple[str, ...] = ()

    class Config:
        """Pydantic configuration."""
        frozen = True


class LessonChange(BaseModel):
    """One classified semantic change of a lesson."""
    change_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique change identifier")
    change_type: ChangeType = Field(..., description="Type of change detected")
    severity: ChangeSeverity = Field(..., description="Change severity level")
    lesson: LessonInfo = Field(..., description="Lesson as it is now")

    # Change details
    field_name: Optional[str] = Field(default=None, description="Field that changed")
    old_value: Optional[Any] = Field(default=None, description="Previous value")
    new_value: Optional[Any] = Field(default=None, description="New value")
    change_summary: str = Field(default="", description="Human-readable change summary")

    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def title(self) -> str:
        return self.change_type.label

    class Config:
        """Pydantic configuration."""
        frozen = True


class DiffResult(NamedTuple):
    """Outcome of comparing two snapshots of the same lesson."""
    changed: bool
    changes: List[LessonChange]


class NoBaseline(BaseModel):
    """No reference snapshot: the next successful fetch is adopted silently."""

    class Config:
        """Pydantic configuration."""
        frozen = True


class Baseline(BaseModel):
    """Most recently accepted lesson list for a date."""
    date: date
    lessons: Tuple[LessonInfo, ...]

    class Config:
        """Pydantic configuration."""
        frozen = True


BaselineState = Union[NoBaseline, Baseline]


class CycleResult(BaseModel):
    """Result of one poll cycle."""
    cycle_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    poll_date: Optional[date] = Field(default=None, description="Date that was polled")
    success: bool = Field(default=True)
    lessons: int = Field(default=0, description="Number of projected lessons")
    changes: List[LessonChange] = Field(default_factory=list)
    baseline_reset: bool = Field(default=False, description="Baseline was (re)adopted or invalidated")
    error: Optional[str] = Field(default=None)
    consecutive_failures: int = Field(default=0)
    fatal: bool = Field(default=False, description="Process should shut down")
    duration_seconds: float = Field(default=0.0)


class PollConfig(BaseModel):
    """Configuration for the poll cycle and its cadence."""
    resource_id: int = Field(..., description="Timetable resource (class) id")
    timezone: str = Field(default="Europe/Berlin", description="Timezone for date rollover and cadence")
    rollover_hour: int = Field(default=18, ge=0, le=24, description="Local hour from which tomorrow is polled")
    max_consecutive_failures: int = Field(default=5, ge=1)

    # Cadence
    active_poll_interval: int = Field(default=120, ge=10, description="Seconds between polls during school hours")
    idle_poll_interval: int = Field(default=900, ge=10, description="Seconds between polls off-hours")
    active_start_hour: int = Field(default=6, ge=0, le=24)
    active_end_hour: int = Field(default=18, ge=0, le=24)
    test_poll_interval: int = Field(default=30, ge=10)

    @validator('timezone')
    def validate_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v

    def get_timezone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class AlertConfig(BaseModel):
    """Configuration for the notification sink."""
    enabled: bool = Field(default=True)
    webhook_url: Optional[str] = Field(default=None, description="Webhook URL; None logs only")
    username: str = Field(default="WebUntis")
    avatar_url: str = Field(
        default="https://cdn.aptoide.com/imgs/b/1/3/b1399c00075a847dd4e54baddfa11b45_icon.png"
    )

    # Alert thresholds
    min_severity: ChangeSeverity = Field(default=ChangeSeverity.LOW)

    # Rate limiting
    notifications_per_second: float = Field(default=0.5, gt=0)
