"""Public entry point for dashboard calendar aggregation - dashcal.

``CalendarAggregationService`` wires the source registry, feed fetcher,
recurrence expander, aggregator and cache together and exposes the two
operations the host application calls: ``get_aggregated_events`` and
``invalidate_cache``.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any, Optional

import httpx

from .aggregator import CalendarAggregator
from .cache import AggregateCache
from .config_manager import EngineSettings
from .fetcher import FeedFetcher
from .health_tracker import HealthStatus, HealthTracker
from .http_client import close_all_clients
from .ics_parser import ICSFeedParser
from .models import AggregateResult, DateRange
from .rrule_expander import RecurrenceExpander, RuleEvaluator
from .sources import SourceRegistry
from .timezone_utils import resolve_timezone, start_of_today

logger = logging.getLogger(__name__)


class CalendarAggregationService:
    """Cached, single-flight access to the aggregated calendar."""

    def __init__(
        self,
        registry: SourceRegistry,
        aggregator: CalendarAggregator,
        cache: AggregateCache,
        local_timezone: datetime.tzinfo,
        window_days: int = 14,
        health_tracker: Optional[HealthTracker] = None,
    ):
        """Initialize service.

        Args:
            registry: Configured calendar sources
            aggregator: Aggregator performing fetch, expansion and merge
            cache: Cache holding the last result
            local_timezone: Timezone used for the default window
            window_days: Length of the default window in days
            health_tracker: Tracker shared with fetcher, expander and aggregator
        """
        self.registry = registry
        self.aggregator = aggregator
        self.cache = cache
        self.local_timezone = local_timezone
        self.window_days = window_days
        self.health_tracker = health_tracker or HealthTracker()
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: Any,
        client: Optional[httpx.AsyncClient] = None,
        evaluator: Optional[RuleEvaluator] = None,
    ) -> "CalendarAggregationService":
        """Build the full engine from a configuration dict or object.

        Args:
            config: Configuration as produced by ConfigManager.load_full_config()
            client: Optional HTTP client (the shared pool is used when omitted)
            evaluator: Optional rule evaluator (dateutil is used when omitted)

        Returns:
            Ready-to-use service

        Raises:
            ConfigurationError: If the source configuration is invalid
        """
        settings = EngineSettings.from_config(config)
        tz = resolve_timezone(settings.default_timezone)
        health_tracker = HealthTracker()

        registry = SourceRegistry.from_config(
            config, default_timeout=settings.fetch_timeout_seconds
        )
        fetcher = FeedFetcher(
            ICSFeedParser(tz), settings=settings, client=client, health_tracker=health_tracker
        )
        expander = RecurrenceExpander(
            tz, evaluator=evaluator, health_tracker=health_tracker, settings=settings
        )
        aggregator = CalendarAggregator(
            fetcher,
            expander,
            fetch_concurrency=settings.fetch_concurrency,
            health_tracker=health_tracker,
        )

        logger.debug(
            "Service configured: %d sources, tz=%s, ttl=%ss, window=%d days",
            len(registry),
            settings.default_timezone,
            settings.cache_ttl_seconds,
            settings.window_days,
        )

        return cls(
            registry,
            aggregator,
            AggregateCache(ttl_seconds=settings.cache_ttl_seconds),
            tz,
            window_days=settings.window_days,
            health_tracker=health_tracker,
        )

    def default_window(
        self, now: Optional[datetime.datetime] = None
    ) -> tuple[datetime.datetime, datetime.datetime]:
        """Return ``(start_of_today, start_of_today + window_days)`` in the local timezone."""
        start = start_of_today(self.local_timezone, now)
        return start, start + datetime.timedelta(days=self.window_days)

    async def get_aggregated_events(
        self,
        window_start: Optional[datetime.datetime] = None,
        window_end: Optional[datetime.datetime] = None,
    ) -> AggregateResult:
        """Return the aggregated calendar for a window.

        Served from cache when the cached result is fresh and was built for the
        same window. Concurrent misses share one aggregation.

        Args:
            window_start: Window start (defaults to local start of today)
            window_end: Window end (defaults to window_start + window_days)

        Returns:
            AggregateResult

        Raises:
            AggregationFailure: If aggregation fails unexpectedly
        """
        start = window_start or self.default_window()[0]
        end = window_end or (start + datetime.timedelta(days=self.window_days))
        requested = DateRange(start=start, end=end)

        cached = self.cache.get(requested)
        if cached is not None:
            return cached

        async with self._refresh_lock:
            # Another request may have refreshed the cache while we waited
            cached = self.cache.get(requested)
            if cached is not None:
                return cached

            result = await self.aggregator.aggregate(self.registry.sources, start, end)
            self.cache.put(result)
            return result

    def invalidate_cache(self) -> None:
        """Force the next get_aggregated_events call to re-aggregate."""
        self.cache.invalidate()

    def get_health(self) -> HealthStatus:
        """Return the current health snapshot."""
        return self.health_tracker.snapshot()

    async def aclose(self) -> None:
        """Release pooled HTTP clients."""
        await close_all_clients()
