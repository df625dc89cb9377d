"""Recurrence expansion for dashcal.

Rules are evaluated in "floating UTC": the event's local wall-clock DTSTART is
stamped as UTC before it reaches the rule evaluator, so the UTC calendar date of
each generated instant is the local calendar date of the occurrence. The local
time-of-day is then rebuilt from the original event, which keeps a 9:00 meeting
at 9:00 across DST changes and keeps all-day events on their own date when the
local timezone is behind UTC.
"""

import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional, Protocol

from dateutil.rrule import rrulestr

from .exceptions import RecurrenceExpansionError
from .health_tracker import HealthTracker
from .models import ExpandedEvent, RawCalendarEvent
from .timezone_utils import format_utc_iso, is_local_midnight, local_midnight, to_utc

logger = logging.getLogger(__name__)

# Exclusion dates match occurrences within this distance (timezone/DST drift)
EXCLUSION_TOLERANCE = timedelta(hours=1)

# Extra margin around the window handed to the rule evaluator
WINDOW_PADDING = timedelta(days=1)

_UNTIL_RE = re.compile(r"UNTIL=(\d{8})(T(\d{6})(Z?))?", re.IGNORECASE)


class RuleEvaluator(Protocol):
    """Produces occurrence instants of a recurrence rule."""

    def occurrences(
        self,
        rule: str,
        dtstart: datetime,
        window_start: datetime,
        window_end: datetime,
    ) -> list[datetime]:
        """Return UTC instants of ``rule`` between the bounds, inclusive."""
        ...


class DateutilRuleEvaluator:
    """RuleEvaluator backed by ``dateutil.rrule``."""

    def __init__(self, max_occurrences: int = 500):
        """Initialize evaluator.

        Args:
            max_occurrences: Cap on instants produced per rule
        """
        self.max_occurrences = max_occurrences

    def occurrences(
        self,
        rule: str,
        dtstart: datetime,
        window_start: datetime,
        window_end: datetime,
    ) -> list[datetime]:
        """Evaluate ``rule`` anchored at ``dtstart``.

        Args:
            rule: RRULE value, e.g. "FREQ=WEEKLY;BYDAY=MO"
            dtstart: Series anchor (timezone-aware)
            window_start: Lower bound, inclusive
            window_end: Upper bound, inclusive

        Returns:
            Occurrence instants in UTC, ascending

        Raises:
            ValueError: If the rule cannot be parsed
        """
        parsed = rrulestr(rule, dtstart=to_utc(dtstart))
        start, end = to_utc(window_start), to_utc(window_end)

        instants: list[datetime] = []
        for occurrence in parsed.xafter(start, count=self.max_occurrences, inc=True):
            if occurrence > end:
                break
            instants.append(to_utc(occurrence))

        if len(instants) >= self.max_occurrences:
            logger.debug("RRULE %r limited to %d occurrences", rule, self.max_occurrences)

        return instants


def is_all_day(event: RawCalendarEvent, tz: tzinfo) -> bool:
    """Classify an event as all-day.

    An event is all-day if its DTSTART was date-only, or if both start and end
    fall exactly on local midnight.

    Args:
        event: Raw event
        tz: Local timezone

    Returns:
        True for all-day events
    """
    if event.is_all_day_hint:
        return True
    return is_local_midnight(event.start, tz) and is_local_midnight(event.end, tz)


def floating_utc(dt: datetime, tz: tzinfo) -> datetime:
    """Return the wall-clock time of ``dt`` in ``tz``, stamped as UTC.

    Naive values are read as UTC.
    """
    return to_utc(dt).astimezone(tz).replace(tzinfo=timezone.utc)


def normalize_until(rule: str, tz: tzinfo) -> str:
    """Rewrite the UNTIL part of a rule into the floating UTC frame.

    dateutil requires UNTIL in UTC when DTSTART is timezone-aware. Date-only
    UNTIL values run to the end of that local day, floating values are local
    wall-clock times, and UTC values are converted to local wall-clock time.

    Args:
        rule: RRULE value
        tz: Local timezone

    Returns:
        Rule with UNTIL expressed as ``YYYYMMDDTHHMMSSZ`` in the floating frame
    """

    def _replace(match: re.Match[str]) -> str:
        day = datetime.strptime(match.group(1), "%Y%m%d")
        if match.group(2) is None:
            until = day.replace(hour=23, minute=59, second=59)
        else:
            clock = datetime.strptime(match.group(3), "%H%M%S").time()
            until = datetime.combine(day.date(), clock)
            if match.group(4):
                until = floating_utc(until.replace(tzinfo=timezone.utc), tz).replace(tzinfo=None)
        return f"UNTIL={until.strftime('%Y%m%dT%H%M%S')}Z"

    return _UNTIL_RE.sub(_replace, rule)


class RecurrenceExpander:
    """Expands raw events into concrete occurrences."""

    def __init__(
        self,
        local_timezone: tzinfo,
        evaluator: Optional[RuleEvaluator] = None,
        health_tracker: Optional[HealthTracker] = None,
        settings: Any = None,
    ):
        """Initialize expander.

        Args:
            local_timezone: Timezone whose wall clock the dashboard displays
            evaluator: Rule evaluator; a DateutilRuleEvaluator is built when omitted
            health_tracker: Optional tracker receiving expansion failures
            settings: Object with ``max_occurrences_per_rule``
        """
        self.tz = local_timezone
        self.evaluator: RuleEvaluator = evaluator or DateutilRuleEvaluator(
            max_occurrences=int(getattr(settings, "max_occurrences_per_rule", 500))
        )
        self.health_tracker = health_tracker

    def expand(
        self,
        event: RawCalendarEvent,
        window_start: datetime,
        window_end: datetime,
        calendar_name: str = "",
    ) -> list[ExpandedEvent]:
        """Expand one raw event over a window.

        Non-recurring events pass through as a single occurrence. Recurring
        events produce one occurrence per rule instant that is not excluded.
        Occurrences near the window edges may be included; the range filter
        trims them exactly.

        Args:
            event: Raw event
            window_start: Window start
            window_end: Window end
            calendar_name: Name of the owning calendar

        Returns:
            Occurrences in chronological order, or an empty list if the rule is
            malformed
        """
        if event.is_all_day_hint:
            event = self._anchor_all_day(event)
        all_day = is_all_day(event, self.tz)

        if not event.is_recurring:
            event_id = (
                f"{event.uid}-{format_utc_iso(event.start)}"
                if event.recurrence_id is not None
                else event.uid
            )
            return [self._build(event, event_id, event.start, event.end, all_day, calendar_name)]

        try:
            candidates = self._evaluate_rule(event, window_start, window_end)
        except RecurrenceExpansionError as e:
            logger.warning("Skipping recurring event %s (%r): %s", event.uid, event.title, e)
            if self.health_tracker is not None:
                self.health_tracker.record_expansion_failure(event.uid, str(e))
            return []

        local_start = event.start.astimezone(self.tz)
        wall_duration = event.end.astimezone(self.tz).replace(tzinfo=None) - local_start.replace(
            tzinfo=None
        )

        occurrences: list[ExpandedEvent] = []
        excluded = 0
        for candidate in candidates:
            day = candidate.astimezone(timezone.utc).date()
            start = self._occurrence_start(day, local_start, all_day)
            end = start + wall_duration

            if self._is_excluded(start, event.exclusion_dates):
                excluded += 1
                continue

            occurrence_id = f"{event.uid}-{format_utc_iso(start)}"
            occurrences.append(
                self._build(event, occurrence_id, start, end, all_day, calendar_name)
            )

        logger.debug(
            "Expanded %s (%r): %d candidates, %d excluded, %d occurrences",
            event.uid,
            event.title,
            len(candidates),
            excluded,
            len(occurrences),
        )
        return occurrences

    def _evaluate_rule(
        self, event: RawCalendarEvent, window_start: datetime, window_end: datetime
    ) -> list[datetime]:
        """Run the evaluator in the floating UTC frame.

        Raises:
            RecurrenceExpansionError: If evaluation fails for any reason
        """
        rule = event.recurrence_rule or ""
        # Occurrences starting this long before the window still overlap it
        lookback = (event.end - event.start) + WINDOW_PADDING

        try:
            return self.evaluator.occurrences(
                normalize_until(rule, self.tz),
                floating_utc(event.start, self.tz),
                floating_utc(window_start, self.tz) - lookback,
                floating_utc(window_end, self.tz) + WINDOW_PADDING,
            )
        except Exception as e:
            raise RecurrenceExpansionError(
                f"Failed to evaluate RRULE {rule!r}: {e}", event.uid
            ) from e

    def _anchor_all_day(self, event: RawCalendarEvent) -> RawCalendarEvent:
        """Pin a date-only event to local midnight of its own calendar dates.

        Date-only values name days, not instants: a holiday on 2025-01-20 starts at
        local midnight of 2025-01-20 whichever zone the feed stamped it in.
        """
        start = local_midnight(event.start.date(), self.tz)
        end = local_midnight(event.end.date(), self.tz)
        if start == event.start and end == event.end:
            return event
        return event.model_copy(update={"start": start, "end": end})

    def _occurrence_start(self, day: date, local_start: datetime, all_day: bool) -> datetime:
        """Rebuild an occurrence start on ``day`` in the local timezone."""
        if all_day:
            return local_midnight(day, self.tz)
        clock = time(local_start.hour, local_start.minute, local_start.second)
        return datetime.combine(day, clock, tzinfo=self.tz)

    @staticmethod
    def _is_excluded(start: datetime, exclusion_dates: list[datetime]) -> bool:
        instant = to_utc(start)
        return any(abs(instant - to_utc(exdate)) <= EXCLUSION_TOLERANCE for exdate in exclusion_dates)

    @staticmethod
    def _build(
        event: RawCalendarEvent,
        event_id: str,
        start: datetime,
        end: datetime,
        all_day: bool,
        calendar_name: str,
    ) -> ExpandedEvent:
        return ExpandedEvent(
            id=event_id,
            title=event.title,
            start=start,
            end=end,
            all_day=all_day,
            calendar_name=calendar_name,
            location=event.location,
            description=event.description,
        )
