"""iCalendar feed parsing into RawCalendarEvent objects - dashcal."""

import logging
import zoneinfo
from collections import Counter
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Optional

from icalendar import Calendar
from icalendar import Event as ICalEvent
from pydantic import ValidationError

from .exceptions import FeedParseError
from .models import RawCalendarEvent
from .timezone_utils import local_midnight, localize

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Event"


class ICSFeedParser:
    """Parses ICS documents, keeping VEVENT components only."""

    def __init__(self, default_timezone: tzinfo):
        """Initialize parser.

        Args:
            default_timezone: Local timezone used for date-only and floating values
        """
        self.default_timezone = default_timezone

    def parse(self, content: str, source_name: Optional[str] = None) -> list[RawCalendarEvent]:
        """Parse an ICS document.

        Args:
            content: Raw ICS text
            source_name: Calendar name for log messages

        Returns:
            Parsed events in feed order, with RECURRENCE-ID overrides folded into
            their master series

        Raises:
            FeedParseError: If the document is not parseable iCalendar
        """
        try:
            calendar = Calendar.from_ical(content)
        except (ValueError, IndexError, KeyError) as e:
            raise FeedParseError(f"Invalid ICS content: {e}", source_name) from e

        if not isinstance(calendar, Calendar) or calendar.name != "VCALENDAR":
            raise FeedParseError("Document is not a VCALENDAR", source_name)

        tz = self._calendar_timezone(calendar)

        events: list[RawCalendarEvent] = []
        discarded: Counter[str] = Counter()

        for component in calendar.subcomponents:
            if component.name != "VEVENT":
                discarded[component.name] += 1
                continue

            event = self.parse_event_component(component, tz)
            if event is not None:
                events.append(event)

        if discarded:
            logger.debug(
                "Feed %s: discarded non-event components %s", source_name, dict(discarded)
            )

        merged = self.apply_recurrence_overrides(events)
        logger.debug("Feed %s: parsed %d events", source_name, len(merged))
        return merged

    def _calendar_timezone(self, calendar: Calendar) -> tzinfo:
        """Timezone for floating values: X-WR-TIMEZONE when valid, else the default."""
        wr_timezone = str(calendar.get("X-WR-TIMEZONE") or "").strip()
        if wr_timezone:
            try:
                return zoneinfo.ZoneInfo(wr_timezone)
            except (zoneinfo.ZoneInfoNotFoundError, ValueError):
                logger.debug("Ignoring unknown X-WR-TIMEZONE %r", wr_timezone)
        return self.default_timezone

    def parse_event_component(
        self, component: ICalEvent, tz: Optional[tzinfo] = None
    ) -> Optional[RawCalendarEvent]:
        """Parse a single VEVENT component.

        Args:
            component: iCalendar VEVENT component
            tz: Timezone for floating date-times (date-only values use the default)

        Returns:
            Parsed RawCalendarEvent or None if the component is unusable
        """
        tz = tz or self.default_timezone
        uid = str(component.get("UID", "")) or None

        dtstart = component.get("DTSTART")
        if dtstart is None:
            logger.warning("Event %s missing DTSTART, skipping", uid)
            return None

        try:
            start_value = dtstart.dt
            is_date_only = isinstance(start_value, date) and not isinstance(start_value, datetime)
            start = self._to_datetime(start_value, tz)

            dtend = component.get("DTEND")
            duration = component.get("DURATION")
            if dtend is not None:
                end = self._to_datetime(dtend.dt, tz)
            elif duration is not None and isinstance(getattr(duration, "dt", None), timedelta):
                end = start + duration.dt
            else:
                end = start

            if end < start:
                logger.warning("Event %s ends before it starts, clamping end to start", uid)
                end = start

            recurrence_id = None
            recurrence_prop = component.get("RECURRENCE-ID")
            if recurrence_prop is not None:
                recurrence_id = self._to_datetime(recurrence_prop.dt, tz)

            return RawCalendarEvent(
                uid=uid or f"{start.isoformat()}-{component.get('SUMMARY', '')}",
                title=str(component.get("SUMMARY") or DEFAULT_TITLE),
                start=start,
                end=end,
                is_all_day_hint=is_date_only,
                recurrence_rule=self._extract_rrule(component),
                exclusion_dates=self._collect_exdates(component, tz),
                location=self._optional_text(component.get("LOCATION")),
                description=self._optional_text(component.get("DESCRIPTION")),
                recurrence_id=recurrence_id,
                is_cancelled=str(component.get("STATUS", "")).upper() == "CANCELLED",
            )

        except (ValueError, TypeError, AttributeError, ValidationError):
            logger.warning("Failed to parse event component %s, skipping", uid, exc_info=True)
            return None

    def _to_datetime(self, value: Any, tz: tzinfo) -> datetime:
        """Convert an iCalendar date/datetime value to an aware datetime.

        Date-only values map to midnight in the configured default timezone;
        floating times are read in ``tz`` (the feed timezone when declared).
        """
        if isinstance(value, datetime):
            return localize(value, tz) if value.tzinfo is None else value
        if isinstance(value, date):
            return local_midnight(value, self.default_timezone)
        raise TypeError(f"Unsupported date value: {value!r}")

    def _extract_rrule(self, component: ICalEvent) -> Optional[str]:
        """Return the RRULE value as an iCalendar string, or None."""
        rrule_prop = component.get("RRULE")
        if rrule_prop is None:
            return None

        if isinstance(rrule_prop, list):
            # Only single-rule recurrence is supported
            logger.warning(
                "Event %s has %d RRULEs, using the first", component.get("UID"), len(rrule_prop)
            )
            rrule_prop = rrule_prop[0]

        if hasattr(rrule_prop, "to_ical"):
            raw = rrule_prop.to_ical()
            return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
        return str(rrule_prop)

    def _collect_exdates(self, component: ICalEvent, tz: tzinfo) -> list[datetime]:
        """Collect EXDATE values, whether given as one property or several."""
        exdate_prop = component.get("EXDATE")
        if exdate_prop is None:
            return []

        props = exdate_prop if isinstance(exdate_prop, list) else [exdate_prop]
        exdates: list[datetime] = []
        for prop in props:
            for entry in getattr(prop, "dts", []):
                try:
                    exdates.append(self._to_datetime(entry.dt, tz))
                except TypeError:
                    logger.warning("Ignoring unparseable EXDATE %r", entry)
        return exdates

    @staticmethod
    def _optional_text(value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value)
        return text or None

    @staticmethod
    def apply_recurrence_overrides(events: list[RawCalendarEvent]) -> list[RawCalendarEvent]:
        """Fold RECURRENCE-ID overrides into their master series.

        A modified instance replaces one occurrence of its series: the overridden
        instant is added to the master's exclusion dates and the modified
        instance is kept as a standalone event. Cancelled instances only exclude.

        Args:
            events: Parsed events in feed order

        Returns:
            Events in feed order with masters updated
        """
        overrides: dict[str, list[datetime]] = {}
        for event in events:
            if event.recurrence_id is not None:
                overrides.setdefault(event.uid, []).append(event.recurrence_id)

        if not overrides:
            return events

        result: list[RawCalendarEvent] = []
        for event in events:
            if event.recurrence_id is not None and event.is_cancelled:
                logger.debug("Dropping cancelled occurrence of %s at %s", event.uid, event.recurrence_id)
                continue
            if event.is_recurring and event.recurrence_id is None and event.uid in overrides:
                event = event.model_copy(
                    update={"exclusion_dates": [*event.exclusion_dates, *overrides[event.uid]]}
                )
                logger.debug(
                    "Applied %d RECURRENCE-ID overrides to series %s",
                    len(overrides[event.uid]),
                    event.uid,
                )
            result.append(event)

        return result
