"""
Rows, position slots and the row resolver.

A grid entry carries three positions (subject/info, teacher, room). Each
position is a sequence of slots, and each slot holds either the current row,
a removed row, or nothing. The resolver turns such a sequence into exactly
one authoritative row or fails loudly.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional, Sequence

import structlog
from pydantic import BaseModel, Field, model_validator, validator

from untis.enums import RowType, Status
from untis.errors import (
    AmbiguousRowError, EmptyRowError, NoRowValueError, RowRemovedError,
    UnexpectedRowTypeError
)

logger = structlog.get_logger(__name__)


class Row(BaseModel):
    """One value of a position (a subject, teacher, room or info line)."""
    row_type: RowType = Field(..., alias="type", description="Semantic role of the row")
    status: Status = Field(..., description="Row status")
    short_name: str = Field(default="", alias="shortName")
    long_name: str = Field(default="", alias="longName")
    display_name: str = Field(default="", alias="displayName")

    @validator('short_name', 'long_name', 'display_name', pre=True)
    def null_to_empty(cls, v):
        """Missing strings normalize to empty string."""
        return "" if v is None else v

    class Config:
        """Pydantic configuration."""
        frozen = True
        populate_by_name = True


class SlotState(str, Enum):
    """Which value a slot carries."""
    CURRENT = "current"
    REMOVED = "removed"
    ABSENT = "absent"


class RowSlot(BaseModel):
    """
    A single position slot.

    The wire format sends ``{"current": Row?, "removed": Row?}``; this is
    collapsed into ``Current(row) | Removed(row) | Absent`` on parse. When the
    backend sends both, the current row wins.
    """
    state: SlotState
    row: Optional[Row] = None

    @model_validator(mode="before")
    @classmethod
    def collapse_wire_slot(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "state" in data:
            return data

        current = data.get("current")
        removed = data.get("removed")

        if current is not None:
            if removed is not None:
                logger.debug("Slot has both current and removed rows, using current")
            return {"state": SlotState.CURRENT, "row": current}
        if removed is not None:
            return {"state": SlotState.REMOVED, "row": removed}
        return {"state": SlotState.ABSENT, "row": None}

    @model_validator(mode="after")
    def check_row_matches_state(self) -> "RowSlot":
        if (self.state == SlotState.ABSENT) != (self.row is None):
            raise ValueError(f"slot state {self.state.value} does not match row presence")
        return self

    @classmethod
    def current(cls, row: Row) -> "RowSlot":
        return cls(state=SlotState.CURRENT, row=row)

    @classmethod
    def removed(cls, row: Row) -> "RowSlot":
        return cls(state=SlotState.REMOVED, row=row)

    @classmethod
    def absent(cls) -> "RowSlot":
        return cls(state=SlotState.ABSENT)

    class Config:
        """Pydantic configuration."""
        frozen = True


class ResolvedRow(NamedTuple):
    """A row together with whether it came from the removed side of its slot."""
    row: Row
    is_removed: bool


def extract_single_slot(slots: Sequence[RowSlot], position: str = "position") -> RowSlot:
    """Return the only slot of a position, failing on zero or several."""
    if len(slots) == 0:
        raise EmptyRowError(position)
    if len(slots) > 1:
        raise AmbiguousRowError(len(slots), position)
    return slots[0]


def row_with_status(slot: RowSlot, position: str = "position") -> ResolvedRow:
    """Prefer the current row; fall back to the removed one."""
    if slot.state == SlotState.CURRENT:
        return ResolvedRow(slot.row, False)
    if slot.state == SlotState.REMOVED:
        return ResolvedRow(slot.row, True)
    raise NoRowValueError(position)


def resolve_row(
    slots: Sequence[RowSlot],
    expected_type: RowType,
    position: str = "position"
) -> ResolvedRow:
    """
    Resolve a position to one row of the expected type.

    Removed rows are returned with ``is_removed=True`` rather than rejected;
    use :func:`resolve_present_row` when a removed value is not acceptable.

    Raises:
        EmptyRowError, AmbiguousRowError, NoRowValueError, UnexpectedRowTypeError
    """
    slot = extract_single_slot(slots, position)
    resolved = row_with_status(slot, position)
    if resolved.row.row_type != expected_type:
        raise UnexpectedRowTypeError(expected_type, resolved.row.row_type, position)
    return resolved


def resolve_present_row(
    slots: Sequence[RowSlot],
    expected_type: RowType,
    position: str = "position"
) -> Row:
    """Like :func:`resolve_row`, but a removed row fails with ``RowRemovedError``."""
    row, is_removed = resolve_row(slots, expected_type, position)
    if is_removed:
        raise RowRemovedError(position)
    return row
