"""Calendar source registry - the fixed list of feeds dashcal aggregates."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import ValidationError

from .config_manager import get_config_value
from .exceptions import ConfigurationError
from .models import CalendarSource

logger = logging.getLogger(__name__)


class SourceRegistry:
    """Immutable, ordered collection of CalendarSource entries.

    Order is significant: it is the merge order used to break ties between
    events with identical start times.
    """

    def __init__(self, sources: Iterable[CalendarSource]):
        """Initialize registry.

        Args:
            sources: Calendar sources in display/merge order

        Raises:
            ConfigurationError: If two sources share a name
        """
        self._sources: tuple[CalendarSource, ...] = tuple(sources)

        seen: set[str] = set()
        for source in self._sources:
            if source.name in seen:
                raise ConfigurationError(f"Duplicate calendar source name: {source.name!r}")
            seen.add(source.name)

        logger.debug("Source registry initialized with %d sources", len(self._sources))

    @classmethod
    def from_config(cls, config: Any, default_timeout: float = 10.0) -> "SourceRegistry":
        """Build registry from the ``ics_sources`` configuration entry.

        Entries may be CalendarSource objects, dicts with ``name``/``url``
        (and optional ``timeout``/``custom_headers``), or bare URL strings which
        are named ``Calendar 1``, ``Calendar 2``, ...

        Args:
            config: Configuration dict or object
            default_timeout: Timeout applied to entries that do not set one

        Returns:
            SourceRegistry

        Raises:
            ConfigurationError: If an entry is malformed
        """
        entries = get_config_value(config, "ics_sources", []) or []
        sources: list[CalendarSource] = []

        for index, entry in enumerate(entries, start=1):
            if isinstance(entry, CalendarSource):
                sources.append(entry)
                continue

            if isinstance(entry, str):
                data: dict[str, Any] = {"name": f"Calendar {index}", "url": entry}
            elif isinstance(entry, dict):
                data = dict(entry)
            else:
                raise ConfigurationError(f"Unsupported calendar source entry #{index}: {entry!r}")

            data.setdefault("timeout", default_timeout)
            try:
                sources.append(CalendarSource(**data))
            except ValidationError as e:
                raise ConfigurationError(f"Invalid calendar source entry #{index}: {e}") from e

        if not sources:
            logger.warning("No calendar sources configured")

        return cls(sources)

    @property
    def sources(self) -> tuple[CalendarSource, ...]:
        """All configured sources in order."""
        return self._sources

    def names(self) -> list[str]:
        """Return configured source names in order."""
        return [source.name for source in self._sources]

    def __iter__(self) -> Iterator[CalendarSource]:
        return iter(self._sources)

    def __len__(self) -> int:
        return len(self._sources)
