"""Data models for calendar aggregation - dashcal."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .timezone_utils import format_utc_iso


class CalendarSource(BaseModel):
    """Configuration for one ICS calendar feed."""

    name: str = Field(..., min_length=1, description="Human-readable name for this calendar")
    url: str = Field(..., min_length=1, description="ICS feed URL")

    # Covers the whole fetch, retries included
    timeout: float = Field(default=10.0, gt=0, description="Fetch timeout in seconds")

    # Optional headers (static tokens, API keys)
    custom_headers: dict[str, str] = Field(default_factory=dict, description="Custom HTTP headers")

    model_config = ConfigDict(frozen=True)


class RawCalendarEvent(BaseModel):
    """One VEVENT as parsed from a feed, before recurrence expansion."""

    uid: str = Field(..., description="iCalendar UID")
    title: str = Field(..., description="Event summary")
    start: datetime = Field(..., description="Event start (timezone-aware)")
    end: datetime = Field(..., description="Event end, equal to start when the feed omits it")
    is_all_day_hint: bool = Field(
        default=False, description="True when DTSTART carried a date without time-of-day"
    )
    recurrence_rule: Optional[str] = Field(default=None, description="RRULE value")
    exclusion_dates: list[datetime] = Field(default_factory=list, description="EXDATE instants")
    location: Optional[str] = None
    description: Optional[str] = None

    # Set on modified instances of a recurring series
    recurrence_id: Optional[datetime] = Field(
        default=None, description="RECURRENCE-ID of an overridden occurrence"
    )
    is_cancelled: bool = Field(default=False, description="STATUS:CANCELLED")

    @model_validator(mode="before")
    @classmethod
    def _default_end_to_start(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("end") is None:
            return {**data, "end": data.get("start")}
        return data

    @field_validator("start", "end", "recurrence_id")
    @classmethod
    def _ensure_timezone_aware(cls, dt: Optional[datetime]) -> Optional[datetime]:
        if dt is not None and dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt

    @field_validator("exclusion_dates")
    @classmethod
    def _ensure_exclusions_aware(cls, values: list[datetime]) -> list[datetime]:
        return [dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt for dt in values]

    @model_validator(mode="after")
    def _check_start_before_end(self) -> "RawCalendarEvent":
        if self.end < self.start:
            raise ValueError(f"Event {self.uid} ends before it starts")
        return self

    @property
    def is_recurring(self) -> bool:
        """Check if the event carries a recurrence rule."""
        return bool(self.recurrence_rule)


class ExpandedEvent(BaseModel):
    """One concrete occurrence, ready for the dashboard."""

    id: str = Field(..., description="Unique per occurrence")
    title: str
    start: datetime
    end: datetime
    all_day: bool = Field(default=False, serialization_alias="allDay")
    calendar_name: str = Field(..., serialization_alias="calendar")
    location: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_start_before_end(self) -> "ExpandedEvent":
        if self.end < self.start:
            raise ValueError(f"Occurrence {self.id} ends before it starts")
        return self

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to canonical ISO-8601 UTC."""
        return format_utc_iso(dt)


class DateRange(BaseModel):
    """Inclusive date window used for an aggregation."""

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to canonical ISO-8601 UTC."""
        return format_utc_iso(dt)


class AggregateMeta(BaseModel):
    """Metadata describing one aggregation run."""

    count: int
    calendars: tuple[str, ...] = Field(default=(), description="Configured source names")
    fetched_at: datetime = Field(..., serialization_alias="fetchedAt")
    range: DateRange

    model_config = ConfigDict(frozen=True)

    @field_serializer("fetched_at")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime to canonical ISO-8601 UTC."""
        return format_utc_iso(dt)


class AggregateResult(BaseModel):
    """Sorted occurrences from every source plus run metadata.

    Instances are frozen; the cache replaces them wholesale.
    """

    events: tuple[ExpandedEvent, ...] = ()
    meta: AggregateMeta

    model_config = ConfigDict(frozen=True)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-serializable wire representation.

        Returns:
            Dict with ``events`` and ``meta`` keys using the dashboard field names
            (``allDay``, ``calendar``, ``fetchedAt``)
        """
        return self.model_dump(mode="json", by_alias=True)
