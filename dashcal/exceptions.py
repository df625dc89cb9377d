"""Exception hierarchy for dashcal calendar aggregation.

Per-source and per-event failures (``SourceFetchError``,
``RecurrenceExpansionError``) are recovered inside the engine and only logged.
``AggregationFailure`` is the one error that reaches callers of
``CalendarAggregationService.get_aggregated_events``.
"""

from __future__ import annotations

from typing import Optional


class DashcalError(Exception):
    """Base exception for all dashcal errors."""


class ConfigurationError(DashcalError):
    """Calendar source or engine configuration is invalid.

    Raised when:
    - A configured source has no name or URL
    - Two sources share the same name
    - The configured timezone cannot be resolved
    """


class SourceFetchError(DashcalError):
    """Fetching or parsing one calendar feed failed.

    Recovered by ``FeedFetcher.fetch``: the source contributes zero events and
    the failure is logged, never surfaced.
    """

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message)
        self.source_name = source_name


class FeedAuthError(SourceFetchError):
    """Feed rejected the request (HTTP 401/403)."""

    def __init__(
        self,
        message: str,
        source_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, source_name)
        self.status_code = status_code


class FeedNetworkError(SourceFetchError):
    """Network error, invalid URL or unexpected HTTP status while fetching a feed."""


class FeedTimeoutError(SourceFetchError):
    """Feed did not answer within the source timeout."""


class FeedParseError(SourceFetchError):
    """Feed content is not a parseable iCalendar document."""


class RecurrenceExpansionError(DashcalError):
    """One recurrence rule could not be evaluated.

    Recovered by ``RecurrenceExpander.expand``: the owning event is skipped and
    sibling events are expanded normally.
    """

    def __init__(self, message: str, uid: Optional[str] = None):
        super().__init__(message)
        self.uid = uid


class AggregationFailure(DashcalError):
    """Unexpected failure in the merge, sort or cache path.

    Surfaced to the caller as a service error. Not retried by dashcal.
    """
