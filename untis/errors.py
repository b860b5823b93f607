"""
Error hierarchy for the Untis timetable client and the lesson pipeline.

Transport failures are marked retryable so the client can back off and try
again; everything else fails the current poll cycle immediately.

Example:
    try:
        day = await client.fetch_day(date, resource_id)
    except SchemaMismatchError:
        # backend format changed, a new build is required
        raise
    except UntisError as e:
        logger.error("Poll cycle failed", error=str(e))
"""

from typing import Any, List, Optional


class UntisError(Exception):
    """Base exception for all timetable errors."""

    pass


class TransportError(UntisError):
    """Network or HTTP failure while talking to the backend.

    Examples: connection reset, request timeout, 503 Service Unavailable.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class AuthError(UntisError):
    """Login handshake failed or the session was rejected."""

    pass


class SchemaMismatchError(UntisError):
    """The backend reported a format version this build was not written against.

    Never retried: it means the wire contract changed.
    """

    def __init__(self, expected: int, actual: Any):
        super().__init__(
            f"Format version mismatch: expected {expected}, got {actual} "
            f"(contact project maintainers)"
        )
        self.expected = expected
        self.actual = actual


class BackendValidationError(UntisError):
    """The backend rejected the request or reported per-field errors."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors or []


class PayloadError(UntisError):
    """Response body could not be decoded into the entity model."""

    pass


class ShapeMismatchError(UntisError):
    """The response has an unexpected shape.

    Examples: more than one day for a single-date range, lesson count changed
    within the same day.
    """

    pass


class RowResolutionError(UntisError):
    """A position slot could not be resolved to exactly one row."""

    pass


class EmptyRowError(RowResolutionError):
    """Position has no slots."""

    def __init__(self, position: str = "position"):
        super().__init__(f"{position} is empty")
        self.position = position


class AmbiguousRowError(RowResolutionError):
    """Position has more than one slot."""

    def __init__(self, count: int, position: str = "position"):
        super().__init__(f"{position} has {count} elements (expected exactly one)")
        self.count = count
        self.position = position


class NoRowValueError(RowResolutionError):
    """Slot holds neither a current nor a removed row."""

    def __init__(self, position: str = "position"):
        super().__init__(f"{position} has neither current nor removed row")
        self.position = position


class RowRemovedError(RowResolutionError):
    """Slot only holds a removed row but a present one was required."""

    def __init__(self, position: str = "position"):
        super().__init__(f"{position} row was removed")
        self.position = position


class UnexpectedRowTypeError(RowResolutionError):
    """Row in the slot has a different role than the position implies."""

    def __init__(self, expected: Any, actual: Any, position: str = "position"):
        super().__init__(
            f"{position}: expected row type {getattr(expected, 'value', expected)} "
            f"but got {getattr(actual, 'value', actual)}"
        )
        self.expected = expected
        self.actual = actual
        self.position = position
