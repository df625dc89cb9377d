"""Concurrent fetch, expansion and merge of calendar sources for dashcal."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Sequence
from typing import Any, Optional

from .event_filter import filter_events
from .exceptions import AggregationFailure
from .fetcher import FeedFetcher
from .health_tracker import HealthTracker
from .models import (
    AggregateMeta,
    AggregateResult,
    CalendarSource,
    DateRange,
    ExpandedEvent,
    RawCalendarEvent,
)
from .rrule_expander import RecurrenceExpander
from .timezone_utils import now_utc, to_utc

logger = logging.getLogger(__name__)


class CalendarAggregator:
    """Fetches every source concurrently and merges the expanded occurrences."""

    def __init__(
        self,
        fetcher: FeedFetcher,
        expander: RecurrenceExpander,
        fetch_concurrency: Optional[int] = None,
        health_tracker: Optional[HealthTracker] = None,
    ):
        """Initialize aggregator.

        Args:
            fetcher: Feed fetcher used for each source
            expander: Recurrence expander applied to each raw event
            fetch_concurrency: Maximum simultaneous fetches (None for unbounded)
            health_tracker: Optional tracker receiving aggregation outcomes
        """
        self.fetcher = fetcher
        self.expander = expander
        self.fetch_concurrency = fetch_concurrency
        self.health_tracker = health_tracker

    async def aggregate(
        self,
        sources: Sequence[CalendarSource],
        window_start: datetime.datetime,
        window_end: datetime.datetime,
    ) -> AggregateResult:
        """Build the merged, sorted occurrence list for a window.

        A failing source contributes no events and does not affect the others.

        Args:
            sources: Configured calendar sources
            window_start: Window start
            window_end: Window end

        Returns:
            AggregateResult with events sorted by start and meta describing the run

        Raises:
            AggregationFailure: On an unexpected error outside per-source handling
        """
        # Naive bounds are read as UTC everywhere downstream
        window_start, window_end = to_utc(window_start), to_utc(window_end)

        try:
            raw_per_source = await self.fetch_all_sources(sources)

            expanded: list[ExpandedEvent] = []
            for source, raw_events in zip(sources, raw_per_source):
                expanded.extend(self._expand_source(source, raw_events, window_start, window_end))

            in_range = filter_events(expanded, window_start, window_end)
            # sorted() is stable, so equal starts keep source/feed order
            ordered = sorted(in_range, key=lambda event: event.start)

            result = AggregateResult(
                events=tuple(ordered),
                meta=AggregateMeta(
                    count=len(ordered),
                    calendars=tuple(source.name for source in sources),
                    fetched_at=now_utc(),
                    range=DateRange(start=window_start, end=window_end),
                ),
            )
        except Exception as e:
            logger.exception("Calendar aggregation failed")
            raise AggregationFailure(f"Failed to aggregate calendars: {e}") from e

        if self.health_tracker is not None:
            self.health_tracker.record_aggregation(result.meta.count)

        logger.info(
            "Aggregated %d events from %d calendars", result.meta.count, len(result.meta.calendars)
        )
        return result

    async def fetch_all_sources(
        self, sources: Sequence[CalendarSource]
    ) -> list[list[RawCalendarEvent]]:
        """Fetch all sources concurrently.

        Args:
            sources: Calendar sources

        Returns:
            One list of raw events per source, in source order; empty for failed sources
        """
        if not sources:
            logger.warning("No calendar sources configured")
            return []

        semaphore = (
            asyncio.Semaphore(self.fetch_concurrency) if self.fetch_concurrency else None
        )

        async def _fetch_one(source: CalendarSource) -> list[RawCalendarEvent]:
            if semaphore is None:
                return await self.fetcher.fetch(source)
            async with semaphore:
                return await self.fetcher.fetch(source)

        results: list[Any] = await asyncio.gather(
            *(_fetch_one(source) for source in sources), return_exceptions=True
        )

        per_source: list[list[RawCalendarEvent]] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                logger.error("Source %s failed: %s", source.name, result)
                per_source.append([])
                continue
            logger.debug("Source %s returned %d raw events", source.name, len(result))
            per_source.append(result)

        return per_source

    def _expand_source(
        self,
        source: CalendarSource,
        raw_events: list[RawCalendarEvent],
        window_start: datetime.datetime,
        window_end: datetime.datetime,
    ) -> list[ExpandedEvent]:
        expanded: list[ExpandedEvent] = []
        for raw in raw_events:
            try:
                expanded.extend(self.expander.expand(raw, window_start, window_end, source.name))
            except Exception as e:
                logger.warning("Skipping event %s from %s: %s", raw.uid, source.name, e)
                if self.health_tracker is not None:
                    self.health_tracker.record_expansion_failure(raw.uid, str(e))
        return expanded
