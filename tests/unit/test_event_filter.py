"""Unit tests for dashcal.event_filter."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dashcal.event_filter import filter_events, overlaps
from dashcal.models import ExpandedEvent

pytestmark = [pytest.mark.unit, pytest.mark.fast]

LA = ZoneInfo("America/Los_Angeles")

WINDOW_START = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)
WINDOW_END = datetime(2024, 1, 16, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str, start: datetime, end: datetime) -> ExpandedEvent:
    return ExpandedEvent(id=event_id, title=event_id, start=start, end=end, calendar_name="Work")


@pytest.mark.parametrize(
    "start,end,expected",
    [
        # Ends exactly at window start
        (datetime(2024, 1, 14, 23, 0, tzinfo=timezone.utc), WINDOW_START, True),
        # Starts exactly at window end
        (WINDOW_END, datetime(2024, 1, 16, 1, 0, tzinfo=timezone.utc), True),
        # Spans the whole window
        (datetime(2024, 1, 14, tzinfo=timezone.utc), datetime(2024, 1, 17, tzinfo=timezone.utc), True),
        # Entirely before
        (datetime(2024, 1, 14, 22, 0, tzinfo=timezone.utc), datetime(2024, 1, 14, 23, 59, tzinfo=timezone.utc), False),
        # Entirely after
        (datetime(2024, 1, 16, 0, 1, tzinfo=timezone.utc), datetime(2024, 1, 16, 1, 0, tzinfo=timezone.utc), False),
    ],
)
def test_overlaps_when_boundaries_touch_then_included(
    start: datetime, end: datetime, expected: bool
) -> None:
    """Overlap is inclusive at both window boundaries."""
    assert overlaps(_event("e", start, end), WINDOW_START, WINDOW_END) is expected


def test_filter_events_when_mixed_then_outside_dropped_and_order_kept() -> None:
    """Only overlapping events survive, in input order."""
    late = _event("late", datetime(2024, 1, 15, 20, 0, tzinfo=timezone.utc), datetime(2024, 1, 15, 21, 0, tzinfo=timezone.utc))
    outside = _event("outside", datetime(2024, 1, 20, tzinfo=timezone.utc), datetime(2024, 1, 20, 1, tzinfo=timezone.utc))
    early = _event("early", datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc), datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc))

    kept = filter_events([late, outside, early], WINDOW_START, WINDOW_END)

    assert [e.id for e in kept] == ["late", "early"]


def test_filter_events_when_local_times_then_normalized_to_utc() -> None:
    """Kept events carry UTC datetimes representing the same instants."""
    local = _event("local", datetime(2024, 1, 15, 9, 0, tzinfo=LA), datetime(2024, 1, 15, 9, 30, tzinfo=LA))

    kept = filter_events([local], WINDOW_START, WINDOW_END)[0]

    assert kept.start.tzinfo == timezone.utc
    assert kept.start == datetime(2024, 1, 15, 17, 0, tzinfo=timezone.utc)
    assert kept.end == datetime(2024, 1, 15, 17, 30, tzinfo=timezone.utc)


def test_filter_events_when_naive_window_then_treated_as_utc() -> None:
    """Naive window bounds are read as UTC."""
    event = _event("e", datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc), datetime(2024, 1, 15, 13, 0, tzinfo=timezone.utc))

    kept = filter_events([event], datetime(2024, 1, 15, 13, 0), datetime(2024, 1, 15, 14, 0))

    assert [e.id for e in kept] == ["e"]
