"""Feed fetcher: downloads and parses one calendar source - dashcal."""

import asyncio
import logging
import random
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import (
    FeedAuthError,
    FeedNetworkError,
    FeedParseError,
    FeedTimeoutError,
    SourceFetchError,
)
from .health_tracker import HealthTracker
from .http_client import get_shared_client, record_client_error, record_client_success
from .ics_parser import ICSFeedParser
from .models import CalendarSource, RawCalendarEvent

logger = logging.getLogger(__name__)

# Backoff calculation constants
MAX_BACKOFF_SECONDS = 5.0
JITTER_MIN_FACTOR = 0.1
JITTER_MAX_FACTOR = 0.3

# Feeds larger than this are rejected rather than parsed
MAX_FEED_SIZE_BYTES = 10 * 1024 * 1024


class FeedFetcher:
    """Async fetcher that turns one CalendarSource into RawCalendarEvents.

    ``fetch`` is the failure-isolating entry point used by the aggregator: it
    never raises. ``fetch_feed`` raises ``SourceFetchError`` subclasses and is
    what ``fetch`` wraps.
    """

    def __init__(
        self,
        parser: ICSFeedParser,
        settings: Any = None,
        client: Optional[httpx.AsyncClient] = None,
        health_tracker: Optional[HealthTracker] = None,
    ) -> None:
        """Initialize feed fetcher.

        Args:
            parser: ICS parser used on downloaded content
            settings: Object with ``max_retries`` and ``retry_backoff_factor``
            client: Optional HTTP client; the shared pooled client is used when omitted
            health_tracker: Optional tracker receiving per-source outcomes
        """
        self.parser = parser
        self.max_retries = int(getattr(settings, "max_retries", 1))
        self.backoff_factor = float(getattr(settings, "retry_backoff_factor", 1.5))
        self.client = client
        self._use_shared_client = client is None
        self._client_id = "feed_fetcher"
        self.health_tracker = health_tracker

    async def fetch(self, source: CalendarSource) -> list[RawCalendarEvent]:
        """Fetch and parse one source, isolating every failure.

        Args:
            source: Calendar source to fetch

        Returns:
            Parsed events, or an empty list if anything went wrong
        """
        try:
            events = await self.fetch_feed(source)
        except SourceFetchError as e:
            logger.warning("Error fetching %s calendar: %s", source.name, e)
            self._record_failure(source, str(e))
            return []
        except Exception as e:
            logger.exception("Unexpected error fetching %s calendar", source.name)
            self._record_failure(source, f"Unexpected error: {e}")
            return []

        if self.health_tracker is not None:
            self.health_tracker.record_fetch_success(source.name, len(events))
        return events

    def _record_failure(self, source: CalendarSource, error: str) -> None:
        if self.health_tracker is not None:
            self.health_tracker.record_fetch_failure(source.name, error)

    async def fetch_feed(self, source: CalendarSource) -> list[RawCalendarEvent]:
        """Download and parse one source within its timeout.

        Args:
            source: Calendar source to fetch

        Returns:
            Parsed events in feed order

        Raises:
            FeedAuthError: HTTP 401/403
            FeedNetworkError: Invalid URL, network failure or other HTTP error status
            FeedTimeoutError: The source did not complete within ``source.timeout``
            FeedParseError: Content is empty, too large or not iCalendar
        """
        if not self._validate_url(source.url):
            raise FeedNetworkError(f"Invalid feed URL: {source.url}", source.name)

        try:
            content = await asyncio.wait_for(self.fetch_content(source), timeout=source.timeout)
        except asyncio.TimeoutError as e:
            raise FeedTimeoutError(
                f"Request timeout after {source.timeout}s", source.name
            ) from e

        return self.parser.parse(content, source.name)

    def _validate_url(self, url: str) -> bool:
        """Check that a feed URL is HTTP(S) with a hostname.

        Args:
            url: URL string to validate

        Returns:
            True if the URL may be fetched
        """
        try:
            parsed = urlparse(url)
        except ValueError:
            logger.debug("URL validation error for %s", url, exc_info=True)
            return False

        if parsed.scheme not in ("http", "https"):
            logger.debug("Blocked non-HTTP(S) URL: %s", url)
            return False

        if not parsed.hostname:
            logger.debug("Blocked URL with missing hostname: %s", url)
            return False

        return True

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is not None and not self.client.is_closed:
            return self.client
        return await get_shared_client(self._client_id)

    async def fetch_content(self, source: CalendarSource) -> str:
        """Download feed text with retry on network errors.

        Args:
            source: Calendar source to download

        Returns:
            ICS document text

        Raises:
            SourceFetchError: On any failure
        """
        client = await self._get_client()
        headers = dict(source.custom_headers)

        attempt = 0
        while True:
            try:
                logger.debug("Fetching ICS for %s (attempt %d)", source.name, attempt + 1)
                response = await client.get(source.url, headers=headers, follow_redirects=True)
                response.raise_for_status()

            except httpx.HTTPStatusError as e:
                # Don't retry HTTP errors (auth errors, not found, etc.)
                status = e.response.status_code
                if status in (401, 403):
                    raise FeedAuthError(
                        f"Access denied (HTTP {status})", source.name, status_code=status
                    ) from e
                raise FeedNetworkError(
                    f"HTTP {status}: {e.response.reason_phrase}", source.name
                ) from e

            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if self._use_shared_client:
                    await record_client_error(self._client_id)

                if attempt >= self.max_retries:
                    if isinstance(e, httpx.TimeoutException):
                        raise FeedTimeoutError(f"Request timeout: {e}", source.name) from e
                    raise FeedNetworkError(f"Network error: {e}", source.name) from e

                backoff_time = self._calculate_backoff(attempt)
                logger.warning(
                    "Request for %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    source.name,
                    attempt + 1,
                    self.max_retries + 1,
                    backoff_time,
                    e,
                )
                await asyncio.sleep(backoff_time)
                attempt += 1
                continue

            except httpx.HTTPError as e:
                raise FeedNetworkError(f"HTTP error: {e}", source.name) from e

            if self._use_shared_client:
                await record_client_success(self._client_id)
            return self._validate_content(response, source)

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff time with jitter.

        Args:
            attempt: Current retry attempt number (0-indexed)

        Returns:
            Backoff time in seconds including jitter
        """
        base_backoff = min(self.backoff_factor**attempt, MAX_BACKOFF_SECONDS)
        jitter = random.uniform(JITTER_MIN_FACTOR, JITTER_MAX_FACTOR) * base_backoff  # nosec B311 - jitter not cryptographic
        return base_backoff + jitter

    def _validate_content(self, response: httpx.Response, source: CalendarSource) -> str:
        """Basic sanity checks on a downloaded feed."""
        if len(response.content) > MAX_FEED_SIZE_BYTES:
            raise FeedParseError(
                f"Feed too large ({len(response.content)} bytes)", source.name
            )

        content = response.text
        if not content or not content.strip():
            raise FeedParseError("Empty content received", source.name)

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(
            ct in content_type for ct in ("text/calendar", "text/plain", "application/octet-stream")
        ):
            logger.debug("Unexpected content type for %s: %s", source.name, content_type)

        if "BEGIN:VCALENDAR" not in content:
            raise FeedParseError("Content is not an iCalendar document", source.name)

        logger.debug("Fetched ICS for %s (%d bytes)", source.name, len(content))
        return content
