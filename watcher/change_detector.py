"""
Change detection engine for lesson snapshots.

This module provides:
- Comparison of two snapshots of the same lesson
- Classification of semantic deltas (cancellation, teacher, room, ...)
- Positional comparison of two lesson lists of the same day
"""

from typing import List, Sequence

import structlog

from untis.enums import Status
from untis.errors import ShapeMismatchError
from watcher.models import (
    ChangeSeverity, ChangeType, DiffResult, LessonChange, LessonInfo
)

logger = structlog.get_logger(__name__)

CHANGE_SEVERITIES = {
    ChangeType.LESSON_CANCELLATION: ChangeSeverity.HIGH,
    ChangeType.LESSON_CHANGE: ChangeSeverity.MEDIUM,
    ChangeType.SUBJECT_CHANGED: ChangeSeverity.MEDIUM,
    ChangeType.TEACHER_CHANGED: ChangeSeverity.MEDIUM,
    ChangeType.ROOM_CHANGED: ChangeSeverity.MEDIUM,
    ChangeType.NOTES_CHANGED: ChangeSeverity.LOW,
}

ANNOTATION_FIELDS = ("lesson_info", "lesson_text", "substitution_text", "notes", "texts")


def _change(change_type: ChangeType, new: LessonInfo, **details) -> LessonChange:
    return LessonChange(
        change_type=change_type,
        severity=CHANGE_SEVERITIES[change_type],
        lesson=new,
        **details
    )


def detect_lesson_changes(old: LessonInfo, new: LessonInfo) -> DiffResult:
    """
    Compare two snapshots of the same lesson.

    The checks are independent; one comparison can yield several changes.
    ``changed`` is True whenever the snapshots differ, even if no check
    produced a classification.
    """
    if old == new:
        return DiffResult(False, [])

    changes: List[LessonChange] = []

    if old.status != new.status:
        summary = f"Lesson Status changed from {old.status.label} to {new.status.label}."
        change_type = None
        if new.status in (Status.CANCELLED, Status.REMOVED):
            change_type = ChangeType.LESSON_CANCELLATION
        elif new.status == Status.CHANGED:
            change_type = ChangeType.LESSON_CHANGE
        # Transitions to ADDED or back to a normal status are not alarming
        if change_type is not None:
            changes.append(_change(
                change_type, new,
                field_name="status",
                old_value=old.status,
                new_value=new.status,
                change_summary=summary
            ))

    if old.subject_status != new.subject_status or old.subject != new.subject:
        changes.append(_change(
            ChangeType.SUBJECT_CHANGED, new,
            field_name="subject",
            old_value=old.subject,
            new_value=new.subject,
            change_summary=(
                f"Subject changed from {old.subject} ({old.subject_status.label}) "
                f"to {new.subject} ({new.subject_status.label})."
            )
        ))

    if old.teacher_status != new.teacher_status or old.teacher != new.teacher:
        changes.append(_change(
            ChangeType.TEACHER_CHANGED, new,
            field_name="teacher",
            old_value=old.teacher,
            new_value=new.teacher,
            change_summary=(
                f"Teacher changed from {old.teacher} ({old.teacher_status.label}) "
                f"to {new.teacher} ({new.teacher_status.label})."
            )
        ))

    if old.room_status != new.room_status or old.room != new.room:
        changes.append(_change(
            ChangeType.ROOM_CHANGED, new,
            field_name="room",
            old_value=old.room,
            new_value=new.room,
            change_summary=f"Room changed from {old.room} to {new.room} ({new.room_status.label})."
        ))

    changed_annotations = [
        name for name in ANNOTATION_FIELDS
        if getattr(old, name) != getattr(new, name)
    ]
    if changed_annotations:
        changes.append(_change(
            ChangeType.NOTES_CHANGED, new,
            field_name=", ".join(changed_annotations),
            old_value={name: getattr(old, name) for name in changed_annotations},
            new_value={name: getattr(new, name) for name in changed_annotations},
            change_summary="Lesson notes changed: " + ", ".join(
                name.replace("_", " ") for name in changed_annotations
            ) + "."
        ))

    return DiffResult(True, changes)


class ChangeDetector:
    """Engine for detecting changes between two lesson lists of one day."""

    def __init__(self):
        self.logger = logger.bind(component="change_detector")

    def detect_changes(self, baseline: Sequence[LessonInfo], current: Sequence[LessonInfo]) -> DiffResult:
        """
        Compare lesson N of the baseline with lesson N of the current fetch.

        Args:
            baseline: Previously accepted lessons of the day
            current: Freshly projected lessons of the same day

        Returns:
            DiffResult with ``changed`` set if any pair differs and all
            classified changes in lesson order

        Raises:
            ShapeMismatchError: the lists differ in length
        """
        if len(baseline) != len(current):
            raise ShapeMismatchError(
                f"Lesson count changed from {len(baseline)} to {len(current)} within the same day"
            )

        changed = False
        changes: List[LessonChange] = []
        for index, (old, new) in enumerate(zip(baseline, current)):
            result = detect_lesson_changes(old, new)
            if not result.changed:
                continue

            changed = True
            changes.extend(result.changes)
            if not result.changes:
                self.logger.debug(
                    "Lesson differs without a classified change",
                    lesson_index=index,
                    start=new.datetime.isoformat()
                )

        if changed:
            self.logger.info(
                "Lesson list changed",
                lessons=len(current),
                changes_detected=len(changes)
            )

        return DiffResult(changed, changes)
