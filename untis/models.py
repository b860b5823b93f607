"""
Pydantic models for the WebUntis timetable entries payload.

Everything here is an immutable snapshot built fresh from each response.
Optional strings and sequences are normalized at this boundary so that the
lesson pipeline never has to branch on missing values.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Tuple

import structlog
from pydantic import BaseModel, Field, ValidationError, validator

from untis.enums import EntryTextType, EntryType, RowType, Status
from untis.errors import BackendValidationError, PayloadError, SchemaMismatchError
from untis.rows import ResolvedRow, Row, RowSlot, resolve_present_row, resolve_row

logger = structlog.get_logger(__name__)

# Bump only after checking the new payload layout by hand.
FORMAT_VERSION = 19

WIRE_DATETIME_FORMAT = "%Y-%m-%dT%H:%M"


class Duration(BaseModel):
    """Start and end of a grid entry as naive local timestamps."""
    start: datetime
    end: datetime

    @validator('start', 'end', pre=True)
    def parse_wire_datetime(cls, v):
        """Timestamps come as YYYY-MM-DDThh:mm without seconds or zone."""
        if isinstance(v, str):
            return datetime.strptime(v, WIRE_DATETIME_FORMAT)
        return v

    class Config:
        """Pydantic configuration."""
        frozen = True


class EntryText(BaseModel):
    """Free-text attachment of a grid entry."""
    text_type: EntryTextType = Field(..., alias="type")
    text: str = Field(default="")

    @validator('text', pre=True)
    def null_to_empty(cls, v):
        return "" if v is None else v

    class Config:
        """Pydantic configuration."""
        frozen = True
        populate_by_name = True


class GridEntry(BaseModel):
    """
    One timetable cell (lesson, exam or event).

    ``position1`` holds the subject (or an info row for purely informational
    entries), ``position2`` the teacher and ``position3`` the room.
    """
    duration: Duration
    entry_type: EntryType = Field(..., alias="type")
    status: Status
    notes_all: str = Field(default="", alias="notesAll")
    position1: Tuple[RowSlot, ...] = Field(default=())
    position2: Tuple[RowSlot, ...] = Field(default=())
    position3: Tuple[RowSlot, ...] = Field(default=())
    texts: Tuple[EntryText, ...] = Field(default=())
    lesson_text: str = Field(default="", alias="lessonText")
    lesson_info: str = Field(default="", alias="lessonInfo")
    substitution_text: str = Field(default="", alias="substitutionText")

    @validator('notes_all', 'lesson_text', 'lesson_info', 'substitution_text', pre=True)
    def null_to_empty(cls, v):
        return "" if v is None else v

    @validator('position1', 'position2', 'position3', 'texts', pre=True)
    def null_to_empty_sequence(cls, v):
        return () if v is None else v

    def info_maybe_removed(self) -> ResolvedRow:
        return resolve_row(self.position1, RowType.INFO, "position1")

    def info(self) -> Row:
        return resolve_present_row(self.position1, RowType.INFO, "position1")

    def subject_maybe_removed(self) -> ResolvedRow:
        return resolve_row(self.position1, RowType.SUBJECT, "position1")

    def subject(self) -> Row:
        return resolve_present_row(self.position1, RowType.SUBJECT, "position1")

    def teacher_maybe_removed(self) -> ResolvedRow:
        return resolve_row(self.position2, RowType.TEACHER, "position2")

    def teacher(self) -> Row:
        return resolve_present_row(self.position2, RowType.TEACHER, "position2")

    def room_maybe_removed(self) -> ResolvedRow:
        return resolve_row(self.position3, RowType.ROOM, "position3")

    def room(self) -> Row:
        return resolve_present_row(self.position3, RowType.ROOM, "position3")

    class Config:
        """Pydantic configuration."""
        frozen = True
        populate_by_name = True


class Day(BaseModel):
    """All grid entries of one calendar date."""
    date: date
    status: Status
    grid_entries: Tuple[GridEntry, ...] = Field(default=(), alias="gridEntries")

    @validator('grid_entries', pre=True)
    def null_to_empty_sequence(cls, v):
        return () if v is None else v

    class Config:
        """Pydantic configuration."""
        frozen = True
        populate_by_name = True


class TimetableEntries(BaseModel):
    """Top-level entries response once the format version has been checked."""
    days: Tuple[Day, ...] = Field(default=())
    errors: List[Any] = Field(default_factory=list)

    @validator('days', 'errors', pre=True)
    def null_to_empty_sequence(cls, v):
        return [] if v is None else v


def check_format_version(payload: Dict[str, Any]) -> None:
    """Reject the payload before any model is built if its format differs."""
    version = payload.get("format")
    if version != FORMAT_VERSION:
        raise SchemaMismatchError(FORMAT_VERSION, version)


def parse_entries(payload: Any) -> List[Day]:
    """
    Turn a decoded entries response into days.

    Args:
        payload: Decoded JSON body of ``timetable/entries``

    Returns:
        Days in the order the backend sent them

    Raises:
        SchemaMismatchError: format version differs from FORMAT_VERSION
        BackendValidationError: backend reported errors alongside the data
        PayloadError: payload does not fit the entity model
    """
    if not isinstance(payload, dict):
        raise PayloadError(f"Expected a JSON object, got {type(payload).__name__}")

    check_format_version(payload)

    errors = payload.get("errors") or []
    if errors:
        raise BackendValidationError(f"API returned errors: {errors!r}", errors)

    try:
        entries = TimetableEntries.model_validate(payload)
    except ValidationError as e:
        raise PayloadError(f"Could not parse timetable entries: {e}") from e

    for day in entries.days:
        if not day.status.is_normal():
            logger.debug("Day has abnormal status", date=str(day.date), status=day.status.value)
        for entry in day.grid_entries:
            if entry.entry_type != EntryType.NORMAL_TEACHING_PERIOD:
                logger.debug(
                    "Entry is not a teaching period",
                    start=entry.duration.start.isoformat(),
                    entry_type=entry.entry_type.value
                )

    return list(entries.days)
