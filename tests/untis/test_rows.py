"""
Test cases for position slots and the row resolver.
"""

import pytest
from pydantic import ValidationError

from untis.enums import RowType, Status
from untis.errors import (
    AmbiguousRowError, EmptyRowError, NoRowValueError, RowRemovedError,
    RowResolutionError, UnexpectedRowTypeError
)
from untis.rows import (
    Row, RowSlot, SlotState, extract_single_slot, resolve_present_row, resolve_row,
    row_with_status
)


def make_row(row_type=RowType.TEACHER, name="Smith", status=Status.REGULAR):
    return Row(row_type=row_type, status=status, short_name=name[:3], long_name=name, display_name=name)


class TestRow:
    """Test cases for Row model."""

    def test_row_from_wire(self, row_factory):
        """Test parsing a row using the camelCase wire names."""
        row = Row.model_validate(row_factory("ROOM", short_name="A1", long_name="A101"))

        assert row.row_type == RowType.ROOM
        assert row.status == Status.REGULAR
        assert row.short_name == "A1"
        assert row.long_name == "A101"

    def test_null_names_become_empty(self):
        """Test that missing names normalize to empty strings."""
        row = Row.model_validate({
            "type": "INFO",
            "status": "ADDED",
            "shortName": None,
            "longName": None,
        })

        assert row.short_name == ""
        assert row.long_name == ""
        assert row.display_name == ""

    def test_unknown_status_rejected(self, row_factory):
        """Test that an unknown status fails validation."""
        with pytest.raises(ValidationError):
            Row.model_validate(row_factory(status="SOMETHING_NEW"))


class TestRowSlot:
    """Test cases for collapsing wire slots."""

    def test_current_only(self, row_factory):
        slot = RowSlot.model_validate({"current": row_factory("TEACHER"), "removed": None})
        assert slot.state == SlotState.CURRENT
        assert slot.row.row_type == RowType.TEACHER

    def test_removed_only(self, row_factory):
        slot = RowSlot.model_validate({"removed": row_factory("TEACHER", long_name="Smith")})
        assert slot.state == SlotState.REMOVED
        assert slot.row.long_name == "Smith"

    def test_neither(self):
        slot = RowSlot.model_validate({"current": None, "removed": None})
        assert slot.state == SlotState.ABSENT
        assert slot.row is None

    def test_both_present_prefers_current(self, row_factory):
        """Test that the current row wins when both sides are sent."""
        slot = RowSlot.model_validate({
            "current": row_factory("TEACHER", long_name="Jones"),
            "removed": row_factory("TEACHER", long_name="Smith"),
        })
        assert slot.state == SlotState.CURRENT
        assert slot.row.long_name == "Jones"

    def test_inconsistent_state_rejected(self):
        with pytest.raises(ValidationError):
            RowSlot(state=SlotState.CURRENT, row=None)

        with pytest.raises(ValidationError):
            RowSlot(state=SlotState.ABSENT, row=make_row())


class TestResolver:
    """Test cases for resolving a position to one row."""

    def test_single_current_row(self):
        row = make_row()
        slot = RowSlot.current(row)
        resolved = resolve_row((slot,), RowType.TEACHER)

        assert extract_single_slot((slot,)) == slot
        assert resolved.row == row
        assert resolved.is_removed is False

    @pytest.mark.parametrize("row_type", list(RowType))
    def test_empty_position(self, row_type):
        with pytest.raises(EmptyRowError) as exc_info:
            resolve_row((), row_type, "position2")
        assert "position2" in str(exc_info.value)

        with pytest.raises(EmptyRowError):
            resolve_present_row((), row_type)

    @pytest.mark.parametrize("row_type", list(RowType))
    @pytest.mark.parametrize("count", [2, 3])
    def test_several_slots_are_ambiguous(self, row_type, count):
        slots = tuple(RowSlot.current(make_row(row_type, name=f"Row {i}")) for i in range(count))

        with pytest.raises(AmbiguousRowError) as exc_info:
            resolve_row(slots, row_type)
        assert exc_info.value.count == count

        with pytest.raises(AmbiguousRowError):
            resolve_present_row(slots, row_type)

    def test_absent_slot_has_no_value(self):
        with pytest.raises(NoRowValueError):
            row_with_status(RowSlot.absent())

    def test_removed_row_non_strict(self):
        """Test that the removed row is returned with its flag."""
        row = make_row()
        resolved = resolve_row((RowSlot.removed(row),), RowType.TEACHER)

        assert resolved.row == row
        assert resolved.is_removed is True

    def test_removed_row_strict(self):
        """Test that strict resolution refuses a removed row."""
        with pytest.raises(RowRemovedError):
            resolve_present_row((RowSlot.removed(make_row()),), RowType.TEACHER)

    def test_wrong_row_type(self):
        with pytest.raises(UnexpectedRowTypeError) as exc_info:
            resolve_row((RowSlot.current(make_row(RowType.ROOM)),), RowType.TEACHER, "position2")

        assert exc_info.value.expected == RowType.TEACHER
        assert exc_info.value.actual == RowType.ROOM

    def test_errors_share_base_class(self):
        """Test that every resolver failure is a RowResolutionError."""
        for error_type in (
            EmptyRowError, AmbiguousRowError, NoRowValueError, RowRemovedError,
            UnexpectedRowTypeError
        ):
            assert issubclass(error_type, RowResolutionError)
