"""dashcal - calendar aggregation and recurrence expansion for ambient dashboards.

Fetches any number of ICS feeds, expands recurring events into concrete
occurrences inside a date window, and serves the merged, sorted result from a
short-lived cache.
"""

__version__ = "0.1.0"

from .exceptions import (
    AggregationFailure,
    ConfigurationError,
    DashcalError,
    RecurrenceExpansionError,
    SourceFetchError,
)
from .models import AggregateMeta, AggregateResult, CalendarSource, ExpandedEvent, RawCalendarEvent
from .service import CalendarAggregationService

__all__ = [
    "AggregateMeta",
    "AggregateResult",
    "AggregationFailure",
    "CalendarAggregationService",
    "CalendarSource",
    "ConfigurationError",
    "DashcalError",
    "ExpandedEvent",
    "RawCalendarEvent",
    "RecurrenceExpansionError",
    "SourceFetchError",
    "__version__",
]
