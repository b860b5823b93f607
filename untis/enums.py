"""
Enumerations shared by the timetable wire format and the lesson pipeline.
"""

from enum import Enum


class Status(str, Enum):
    """Status of a grid entry, a row or a whole day."""
    NO_DATA = "NO_DATA"
    NOT_ALLOWED = "NOT_ALLOWED"
    REGULAR = "REGULAR"
    ADDED = "ADDED"
    CHANGED = "CHANGED"
    REMOVED = "REMOVED"
    CANCELLED = "CANCELLED"

    def is_normal(self) -> bool:
        """Normal statuses never trigger a notification on their own."""
        return self in (Status.NO_DATA, Status.NOT_ALLOWED, Status.REGULAR)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()

    def __str__(self) -> str:
        return self.label


class EntryType(str, Enum):
    """Kind of timetable cell."""
    NORMAL_TEACHING_PERIOD = "NORMAL_TEACHING_PERIOD"
    EXAM = "EXAM"
    EVENT = "EVENT"


class EntryTextType(str, Enum):
    """Tag of a free-text attachment on a grid entry."""
    LESSON_INFO = "LESSON_INFO"
    SUBSTITUTION_TEXT = "SUBSTITUTION_TEXT"


class RowType(str, Enum):
    """Semantic role of a row inside a position slot."""
    SUBJECT = "SUBJECT"
    TEACHER = "TEACHER"
    ROOM = "ROOM"
    INFO = "INFO"
