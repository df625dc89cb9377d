from collections.abc import AsyncIterator, Generator
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Callable
from zoneinfo import ZoneInfo

import pytest

from dashcal.http_client import close_all_clients
from dashcal.models import RawCalendarEvent

LA = ZoneInfo("America/Los_Angeles")

# Environment variables read by dashcal; cleared so the host environment never leaks in
_DASHCAL_ENV_VARS = (
    "DASHCAL_TEST_TIME",
    "DASHCAL_ICS_SOURCES",
    "DASHCAL_ICS_URL",
    "DASHCAL_CACHE_TTL_SECONDS",
    "DASHCAL_FETCH_TIMEOUT_SECONDS",
    "DASHCAL_FETCH_CONCURRENCY",
    "DASHCAL_WINDOW_DAYS",
    "DASHCAL_MAX_RETRIES",
    "DASHCAL_MAX_OCCURRENCES_PER_RULE",
    "DASHCAL_DEFAULT_TIMEZONE",
    "DASHCAL_DEBUG",
    "DASHCAL_LOG_LEVEL",
)


@pytest.fixture
def simple_settings() -> SimpleNamespace:
    """Lightweight settings object used across tests.

    Fields:
      - max_retries: retry attempts for HTTP fetches (0 keeps tests fast)
      - retry_backoff_factor: multiplier for retry backoff delays
      - max_occurrences_per_rule: cap on recurrence expansion
    """
    return SimpleNamespace(
        max_retries=0,
        retry_backoff_factor=1.5,
        max_occurrences_per_rule=500,
    )


@pytest.fixture
def la_tz() -> ZoneInfo:
    """Deterministic local timezone so tests never depend on the host setting."""
    return LA


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear dashcal environment variables before and after each test."""
    for name in _DASHCAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    for name in _DASHCAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close pooled httpx clients after every test to prevent resource leaks."""
    yield
    await close_all_clients()


@pytest.fixture
def make_raw_event() -> Callable[..., RawCalendarEvent]:
    """Factory for RawCalendarEvent with sensible defaults.

    Defaults to a 30 minute timed event on 2024-01-15 10:00 Los Angeles time.
    """

    def _make(**overrides: Any) -> RawCalendarEvent:
        start = overrides.pop("start", datetime(2024, 1, 15, 10, 0, tzinfo=LA))
        data: dict[str, Any] = {
            "uid": "event-1",
            "title": "Event",
            "start": start,
            "end": start + timedelta(minutes=30),
        }
        data.update(overrides)
        return RawCalendarEvent(**data)

    return _make


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """
    Return a simple ICS calendar string with a single event.

    Returns:
        RFC 5545 compliant ICS string with one event:
        - Event: "Team Meeting" on 2024-01-15 10:00-11:00 UTC
        - Includes DTSTART, DTEND, SUMMARY, LOCATION, DESCRIPTION
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//dashcal Test//EN
CALSCALE:GREGORIAN
BEGIN:VEVENT
UID:test-event-001@dashcal.test
DTSTART:20240115T100000Z
DTEND:20240115T110000Z
SUMMARY:Team Meeting
LOCATION:Conference Room A
DESCRIPTION:Weekly team sync meeting
DTSTAMP:20240115T090000Z
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_team_sync() -> str:
    """
    Return the weekly "Team Sync" series with one excluded Monday.

    Returns:
        ICS string with:
        - Event: "Team Sync" Mondays 09:00-09:30 America/Los_Angeles from 2024-01-01
        - RRULE:FREQ=WEEKLY;BYDAY=MO
        - EXDATE on 2024-01-08 09:00 local (second Monday)
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//dashcal Test//EN
BEGIN:VEVENT
UID:team-sync@dashcal.test
DTSTART;TZID=America/Los_Angeles:20240101T090000
DTEND;TZID=America/Los_Angeles:20240101T093000
SUMMARY:Team Sync
RRULE:FREQ=WEEKLY;BYDAY=MO
EXDATE;TZID=America/Los_Angeles:20240108T090000
DTSTAMP:20231220T090000Z
END:VEVENT
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_mixed_components() -> str:
    """
    Return an ICS string mixing VEVENT with VTODO and VJOURNAL components.

    Returns:
        ICS string with one all-day VEVENT (2024-01-16, no SUMMARY), one VTODO
        and one VJOURNAL
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//dashcal Test//EN
BEGIN:VTODO
UID:todo-1@dashcal.test
SUMMARY:Buy milk
DTSTAMP:20240110T090000Z
END:VTODO
BEGIN:VEVENT
UID:holiday@dashcal.test
DTSTART;VALUE=DATE:20240116
DTEND;VALUE=DATE:20240117
DTSTAMP:20240110T090000Z
END:VEVENT
BEGIN:VJOURNAL
UID:journal-1@dashcal.test
SUMMARY:Notes
DTSTAMP:20240110T090000Z
END:VJOURNAL
END:VCALENDAR
"""


@pytest.fixture
def sample_ics_recurrence_override() -> str:
    """
    Return a daily series with one moved and one cancelled instance.

    Returns:
        ICS string with:
        - Master: "Standup" daily 09:00-09:15 UTC, COUNT=5, from 2024-01-15
        - Override: 2024-01-16 instance moved to 11:00-11:15 UTC
        - Override: 2024-01-17 instance cancelled
    """
    return """BEGIN:VCALENDAR
VERSION:2.0
PRODID:-//dashcal Test//EN
BEGIN:VEVENT
UID:standup@dashcal.test
DTSTART:20240115T090000Z
DTEND:20240115T091500Z
SUMMARY:Standup
RRULE:FREQ=DAILY;COUNT=5
DTSTAMP:20240110T090000Z
END:VEVENT
BEGIN:VEVENT
UID:standup@dashcal.test
RECURRENCE-ID:20240116T090000Z
DTSTART:20240116T110000Z
DTEND:20240116T111500Z
SUMMARY:Standup (moved)
DTSTAMP:20240110T090000Z
END:VEVENT
BEGIN:VEVENT
UID:standup@dashcal.test
RECURRENCE-ID:20240117T090000Z
DTSTART:20240117T090000Z
DTEND:20240117T091500Z
SUMMARY:Standup
STATUS:CANCELLED
DTSTAMP:20240110T090000Z
END:VEVENT
END:VCALENDAR
"""
