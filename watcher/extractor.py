"""
Projection of timetable grid entries into comparable lesson records.
"""

from typing import List, Optional

import structlog

from untis.errors import RowResolutionError
from untis.models import Day, GridEntry
from watcher.models import LessonInfo

logger = structlog.get_logger(__name__)


def normalize_text(value: str) -> Optional[str]:
    """Trim a free-text field; blank becomes None."""
    value = value.strip()
    return value or None


def is_info_entry(entry: GridEntry) -> bool:
    """Entries whose first position holds an info row carry no lesson."""
    try:
        entry.info()
    except RowResolutionError:
        return False
    return True


def extract_lesson_info(entry: GridEntry) -> Optional[LessonInfo]:
    """
    Build the lesson record for a grid entry.

    Subject and room must be present; a removed teacher is accepted since
    its name is still worth showing.

    Returns:
        LessonInfo, or None for informational entries

    Raises:
        RowResolutionError: a position could not be resolved
    """
    if is_info_entry(entry):
        return None

    subject = entry.subject()
    teacher, _ = entry.teacher_maybe_removed()
    room = entry.room()

    return LessonInfo(
        status=entry.status,
        datetime=entry.duration.start,
        subject=subject.long_name,
        subject_status=subject.status,
        teacher=teacher.long_name,
        teacher_status=teacher.status,
        room=room.long_name,
        room_status=room.status,
        lesson_info=normalize_text(entry.lesson_info),
        lesson_text=normalize_text(entry.lesson_text),
        substitution_text=normalize_text(entry.substitution_text),
        notes=normalize_text(entry.notes_all),
        texts=tuple(text.text for text in entry.texts),
    )


def extract_all_lessons(day: Day) -> List[LessonInfo]:
    """
    Project every grid entry of a day, keeping entry order.

    Fails on the first entry that cannot be resolved; a partial lesson list
    is never returned.
    """
    lessons = []
    for index, entry in enumerate(day.grid_entries):
        try:
            lesson = extract_lesson_info(entry)
        except RowResolutionError as e:
            logger.warning(
                "Could not resolve grid entry",
                date=str(day.date),
                entry_index=index,
                start=entry.duration.start.isoformat(),
                error=str(e)
            )
            raise
        if lesson is not None:
            lessons.append(lesson)
    return lessons
