"""Range filtering of expanded occurrences for dashcal."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable

from .models import ExpandedEvent
from .timezone_utils import to_utc

logger = logging.getLogger(__name__)


def overlaps(
    event: ExpandedEvent, window_start: datetime.datetime, window_end: datetime.datetime
) -> bool:
    """Check whether an occurrence touches the window.

    Both bounds are inclusive: an event ending exactly at ``window_start`` or
    starting exactly at ``window_end`` is kept.
    """
    return event.start <= window_end and event.end >= window_start


def filter_events(
    events: Iterable[ExpandedEvent],
    window_start: datetime.datetime,
    window_end: datetime.datetime,
) -> list[ExpandedEvent]:
    """Keep occurrences overlapping the window, normalized to UTC.

    Args:
        events: Expanded occurrences, in any order
        window_start: Window start (naive values are taken as UTC)
        window_end: Window end (naive values are taken as UTC)

    Returns:
        Overlapping occurrences in input order, with start/end in UTC
    """
    start, end = to_utc(window_start), to_utc(window_end)

    kept: list[ExpandedEvent] = []
    dropped = 0
    for event in events:
        if not overlaps(event, start, end):
            dropped += 1
            continue
        kept.append(
            event.model_copy(update={"start": to_utc(event.start), "end": to_utc(event.end)})
        )

    if dropped:
        logger.debug("Range filter dropped %d occurrences outside %s - %s", dropped, start, end)
    return kept
