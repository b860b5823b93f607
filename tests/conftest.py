"""
Pytest configuration and shared fixtures.
"""

import pytest
from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock

from untis.enums import Status
from watcher.alerting import AlertManager
from watcher.models import AlertConfig, LessonInfo, PollConfig


TEST_DATE = date(2024, 5, 13)  # a Monday


def wire_row(row_type="SUBJECT", status="REGULAR", short_name="M", long_name="Mathematics"):
    """Row as the backend sends it."""
    return {
        "type": row_type,
        "status": status,
        "shortName": short_name,
        "longName": long_name,
        "displayName": long_name,
    }


def wire_entry(
    start="2024-05-13T08:00",
    end="2024-05-13T08:45",
    status="REGULAR",
    subject="Mathematics",
    teacher="Smith",
    room="A101",
    **overrides
):
    """Grid entry as the backend sends it, with one current row per position."""
    entry = {
        "duration": {"start": start, "end": end},
        "type": "NORMAL_TEACHING_PERIOD",
        "status": status,
        "notesAll": "",
        "position1": [{"current": wire_row("SUBJECT", long_name=subject), "removed": None}],
        "position2": [{"current": wire_row("TEACHER", short_name="SMI", long_name=teacher), "removed": None}],
        "position3": [{"current": wire_row("ROOM", short_name="A1", long_name=room), "removed": None}],
        "texts": [],
        "lessonText": "",
        "lessonInfo": None,
        "substitutionText": None,
    }
    entry.update(overrides)
    return entry


def wire_payload(entries=None, day="2024-05-13", format_version=19, errors=None):
    """Complete entries response for a single day."""
    return {
        "format": format_version,
        "days": [
            {
                "date": day,
                "status": "REGULAR",
                "gridEntries": entries if entries is not None else [wire_entry()],
            }
        ],
        "errors": errors if errors is not None else [],
    }


@pytest.fixture
def row_factory():
    return wire_row


@pytest.fixture
def entry_factory():
    return wire_entry


@pytest.fixture
def payload_factory():
    return wire_payload


@pytest.fixture
def sample_entry_data():
    """Single regular lesson in wire format."""
    return wire_entry()


@pytest.fixture
def sample_payload():
    """Entries response with two regular lessons."""
    return wire_payload([
        wire_entry(),
        wire_entry(start="2024-05-13T09:00", end="2024-05-13T09:45", subject="English", room="B202"),
    ])


@pytest.fixture
def make_lesson():
    """Factory for projected lessons with overridable fields."""
    def _make(**overrides):
        data = {
            "status": Status.REGULAR,
            "datetime": datetime(2024, 5, 13, 8, 0),
            "subject": "Mathematics",
            "subject_status": Status.REGULAR,
            "teacher": "Smith",
            "teacher_status": Status.REGULAR,
            "room": "A101",
            "room_status": Status.REGULAR,
        }
        data.update(overrides)
        return LessonInfo(**data)
    return _make


@pytest.fixture
def sample_lesson(make_lesson):
    """A regular lesson."""
    return make_lesson()


@pytest.fixture
def poll_config():
    """Poll configuration used by the cycle and service tests."""
    return PollConfig(resource_id=1234, timezone="Europe/Berlin", max_consecutive_failures=5)


@pytest.fixture
def alert_config():
    """Alert configuration without a webhook (log only)."""
    return AlertConfig(enabled=True, webhook_url=None)


@pytest.fixture
def mock_alert_manager():
    """Create a mock alert manager for testing."""
    manager = AsyncMock(spec=AlertManager)
    return manager


@pytest.fixture
def mock_untis_client():
    """Create a mock timetable client with a valid session."""
    client = MagicMock()
    client.session = object()
    client.is_session_expired.return_value = False
    client.authenticate = AsyncMock()
    client.fetch_day = AsyncMock()
    return client
