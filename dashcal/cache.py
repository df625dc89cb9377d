"""Single-slot, time-bounded cache of the last aggregation result.

The cache holds at most one AggregateResult together with the monotonic time
it was stored. A slot is fresh while its age is below the TTL; a stale slot is
dropped the first time it is read.

Example:
    cache = AggregateCache(ttl_seconds=300)

    cached = cache.get(requested_range)
    if cached is None:
        cached = await aggregator.aggregate(...)
        cache.put(cached)

    # Forced refresh
    cache.invalidate()
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

from .models import AggregateResult, DateRange

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class AggregateCache:
    """Thread-safe single-entry cache with a time-to-live."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            ttl_seconds: Lifetime of a stored result; 0 disables caching
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._slot: Optional[tuple[AggregateResult, float]] = None  # (result, stored_at)
        self.stats = {
            "hits": 0,
            "misses": 0,
            "invalidations": 0,
        }

    def get(self, window: Optional[DateRange] = None) -> Optional[AggregateResult]:
        """Return the cached result if it is still fresh.

        Args:
            window: Requested range; a result built for a different range is a miss

        Returns:
            Cached AggregateResult or None
        """
        with self._lock:
            if self._slot is None:
                self.stats["misses"] += 1
                logger.debug("Cache miss (empty)")
                return None

            result, stored_at = self._slot
            age = self._clock() - stored_at
            if age >= self.ttl_seconds:
                self._slot = None
                self.stats["misses"] += 1
                logger.debug("Cache entry expired (age %.1fs >= ttl %ss)", age, self.ttl_seconds)
                return None

            if window is not None and result.meta.range != window:
                self.stats["misses"] += 1
                logger.debug("Cache miss (cached range differs from requested range)")
                return None

            self.stats["hits"] += 1
            logger.debug("Cache hit (age %.1fs)", age)
            return result

    def put(self, result: AggregateResult) -> None:
        """Store a result, replacing any previous one."""
        with self._lock:
            self._slot = (result, self._clock())
        logger.debug("Cached aggregation with %d events", result.meta.count)

    def invalidate(self) -> None:
        """Clear the slot so the next read misses."""
        with self._lock:
            had_entry = self._slot is not None
            self._slot = None
            self.stats["invalidations"] += 1
        logger.info("Invalidated aggregation cache (had entry: %s)", had_entry)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with hits, misses, hit_rate (0-100), invalidations, has_entry and ttl_seconds
        """
        with self._lock:
            total_requests = self.stats["hits"] + self.stats["misses"]
            hit_rate = (self.stats["hits"] / total_requests * 100) if total_requests > 0 else 0.0
            return {
                "hits": self.stats["hits"],
                "misses": self.stats["misses"],
                "hit_rate": round(hit_rate, 2),
                "invalidations": self.stats["invalidations"],
                "has_entry": self._slot is not None,
                "ttl_seconds": self.ttl_seconds,
            }
