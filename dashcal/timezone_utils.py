"""Timezone resolution and wall-clock helpers for dashcal."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo

logger = logging.getLogger(__name__)

# Default fallback timezone for all timezone operations
DEFAULT_TIMEZONE = "America/Los_Angeles"

# Environment variable used to freeze "now" in tests and troubleshooting
TEST_TIME_ENV_VAR = "DASHCAL_TEST_TIME"


class TimeProvider:
    """Provides current time with test time override support."""

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden for testing via the DASHCAL_TEST_TIME environment variable.
        Format: ISO 8601 datetime string (e.g., "2025-10-27T08:20:00-07:00").
        Naive values are taken as UTC.

        Returns:
            Current time in UTC with timezone info
        """
        test_time = os.environ.get(TEST_TIME_ENV_VAR)
        if test_time:
            try:
                from dateutil import parser as date_parser

                dt = date_parser.isoparse(test_time)
                if dt.tzinfo is not None:
                    return dt.astimezone(datetime.timezone.utc)
                return dt.replace(tzinfo=datetime.timezone.utc)

            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV_VAR, test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function).

    Returns:
        Current time in UTC
    """
    return _time_provider.now_utc()


def resolve_timezone(name: str | None) -> zoneinfo.ZoneInfo:
    """Resolve an IANA timezone name, falling back to DEFAULT_TIMEZONE.

    Args:
        name: IANA timezone identifier or None

    Returns:
        ZoneInfo for the name, or for the fallback timezone if the name is unknown
    """
    if name:
        try:
            return zoneinfo.ZoneInfo(name)
        except (zoneinfo.ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, falling back to %s", name, DEFAULT_TIMEZONE)
    return zoneinfo.ZoneInfo(DEFAULT_TIMEZONE)


def to_utc(dt: datetime.datetime) -> datetime.datetime:
    """Convert a datetime to UTC, treating naive values as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def localize(dt: datetime.datetime, tz: datetime.tzinfo) -> datetime.datetime:
    """Attach ``tz`` to a naive (floating) datetime, or convert an aware one into ``tz``."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def local_midnight(day: datetime.date, tz: datetime.tzinfo) -> datetime.datetime:
    """Return midnight at the start of ``day`` in ``tz``."""
    return datetime.datetime.combine(day, datetime.time.min, tzinfo=tz)


def start_of_today(tz: datetime.tzinfo, now: datetime.datetime | None = None) -> datetime.datetime:
    """Return local midnight of the current day in ``tz``.

    Args:
        tz: Local timezone
        now: Optional reference instant (defaults to now_utc())
    """
    reference = now if now is not None else now_utc()
    return local_midnight(reference.astimezone(tz).date(), tz)


def is_local_midnight(dt: datetime.datetime, tz: datetime.tzinfo) -> bool:
    """Check whether ``dt`` falls exactly on midnight in ``tz``."""
    local = localize(dt, tz)
    return local.hour == 0 and local.minute == 0 and local.second == 0 and local.microsecond == 0


def format_utc_iso(dt: datetime.datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Example:
        >>> format_utc_iso(datetime.datetime(2024, 1, 15, 10, tzinfo=datetime.timezone.utc))
        '2024-01-15T10:00:00.000Z'
    """
    return to_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")
