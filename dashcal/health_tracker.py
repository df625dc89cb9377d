"""Health tracking for calendar aggregation.

Fetch and expansion failures are recovered locally and never reach the caller;
this tracker is where they are recorded so that an operator (or a status route
in the host application) can see which calendars are degraded.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SourceHealth:
    """Fetch history for one calendar source."""

    name: str
    consecutive_failures: int = 0
    last_success: Optional[float] = None
    last_failure: Optional[float] = None
    last_error: Optional[str] = None
    last_event_count: int = 0


@dataclass
class HealthStatus:
    """Point-in-time health summary."""

    status: str  # "ok", "degraded", or "critical"
    uptime_seconds: int
    last_aggregation_age_seconds: Optional[int]
    event_count: int
    expansion_failures: int
    last_expansion_error: Optional[str] = None
    sources: list[dict[str, Any]] = field(default_factory=list)


class HealthTracker:
    """Thread-safe recorder of fetch, expansion and aggregation outcomes."""

    def __init__(self) -> None:
        """Initialize health tracker with default values."""
        self._lock = threading.Lock()
        self._start_time: float = time.time()
        self._sources: dict[str, SourceHealth] = {}
        self._expansion_failures: int = 0
        self._last_expansion_error: Optional[str] = None
        self._last_aggregation: Optional[float] = None
        self._event_count: int = 0

    def _source(self, name: str) -> SourceHealth:
        if name not in self._sources:
            self._sources[name] = SourceHealth(name=name)
        return self._sources[name]

    def record_fetch_success(self, source_name: str, event_count: int) -> None:
        """Record a successful fetch and parse of one source.

        Args:
            source_name: Calendar source name
            event_count: Number of raw events parsed from the feed
        """
        with self._lock:
            health = self._source(source_name)
            health.consecutive_failures = 0
            health.last_success = time.time()
            health.last_event_count = event_count

    def record_fetch_failure(self, source_name: str, error: str) -> None:
        """Record a failed fetch of one source.

        Args:
            source_name: Calendar source name
            error: Human-readable error description
        """
        with self._lock:
            health = self._source(source_name)
            health.consecutive_failures += 1
            health.last_failure = time.time()
            health.last_error = error

    def record_expansion_failure(self, uid: str, error: str) -> None:
        """Record a recurrence rule that could not be expanded."""
        with self._lock:
            self._expansion_failures += 1
            self._last_expansion_error = f"{uid}: {error}"

    def record_aggregation(self, event_count: int) -> None:
        """Record a completed aggregation run."""
        with self._lock:
            self._last_aggregation = time.time()
            self._event_count = event_count

    def snapshot(self) -> HealthStatus:
        """Build a health summary.

        Status is "critical" when every known source is failing, "degraded"
        when at least one is, and "ok" otherwise.

        Returns:
            HealthStatus
        """
        with self._lock:
            now = time.time()
            sources = list(self._sources.values())
            failing = [s for s in sources if s.consecutive_failures > 0]

            if sources and len(failing) == len(sources):
                status = "critical"
            elif failing:
                status = "degraded"
            else:
                status = "ok"

            last_age = (
                int(now - self._last_aggregation) if self._last_aggregation is not None else None
            )

            return HealthStatus(
                status=status,
                uptime_seconds=int(now - self._start_time),
                last_aggregation_age_seconds=last_age,
                event_count=self._event_count,
                expansion_failures=self._expansion_failures,
                last_expansion_error=self._last_expansion_error,
                sources=[
                    {
                        "name": s.name,
                        "consecutive_failures": s.consecutive_failures,
                        "last_error": s.last_error,
                        "last_event_count": s.last_event_count,
                    }
                    for s in sources
                ],
            )
