"""
Domain models for booking windows, rate tiers and suggested slots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from enum import Enum
from typing import Optional

import pendulum
from pendulum import DateTime

from .exceptions import ValidationError

# Applied once, when a booking window is built from partial input.
DEFAULT_BOOKING_DURATION_MINUTES = 60

MIN_BOOKING_DURATION_MINUTES = 60
MAX_BOOKING_DURATION_MINUTES = 6 * 60


class RuleViolation(str, Enum):
    """Identifiers of the scheduling rules a candidate window can break."""

    MINIMUM_ADVANCE = "MinimumAdvance"
    DURATION_TOO_SHORT = "DurationTooShort"
    DURATION_TOO_LONG = "DurationTooLong"
    OVERLAP = "Overlap"
    BUFFER_AFTER = "BufferAfter"
    BUFFER_BEFORE = "BufferBefore"


def to_utc(value: datetime, field_name: str = "start") -> DateTime:
    """Convert an aware datetime to a pendulum UTC DateTime. Naive values are refused."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(field_name, f"{field_name} must carry a timezone offset")
    return pendulum.instance(value).in_timezone("UTC")


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable half-open time range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def contains(self, instant: DateTime) -> bool:
        return self.start <= instant < self.end

    def expand(self, before: pendulum.Duration, after: pendulum.Duration) -> "TimeRange":
        """Return a copy widened by ``before`` and ``after``."""
        return TimeRange(start=self.start - before, end=self.end + after)

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        return TimeRange(start=max(self.start, other.start), end=min(self.end, other.end))

    def __str__(self) -> str:
        return f"{self.start.to_iso8601_string()} - {self.end.to_iso8601_string()}"


@dataclass(frozen=True)
class BookingWindow:
    """
    Canonical booking time representation: absolute UTC start plus duration.

    The end instant is always derived, never stored independently.
    """
    start: DateTime
    duration_minutes: int

    def __post_init__(self):
        object.__setattr__(self, "start", to_utc(self.start))
        if self.duration_minutes <= 0:
            raise ValidationError("duration_minutes", "Duration must be greater than zero")

    @property
    def end(self) -> DateTime:
        return self.start.add(minutes=self.duration_minutes)

    @property
    def duration_hours(self) -> float:
        return self.duration_minutes / 60

    def as_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    @classmethod
    def from_input(
        cls,
        start: datetime,
        end: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
    ) -> "BookingWindow":
        """
        Build a window from whichever of ``end`` / ``duration_minutes`` the caller supplied.

        Args:
            start: Aware start instant
            end: Optional aware end instant
            duration_minutes: Optional duration

        Returns:
            BookingWindow, defaulting to DEFAULT_BOOKING_DURATION_MINUTES when
            neither end nor duration is given

        Raises:
            ValidationError: If the inputs are missing, naive, or inconsistent
        """
        if start is None:
            raise ValidationError("start", "Start time is required")

        start_utc = to_utc(start)

        if end is not None:
            end_utc = to_utc(end, "end")
            if end_utc <= start_utc:
                raise ValidationError("end", "End time must be after start time")
            derived = int((end_utc - start_utc).total_seconds() // 60)
            if duration_minutes is not None and duration_minutes != derived:
                raise ValidationError(
                    "duration_minutes",
                    f"Duration {duration_minutes} does not match end time ({derived} minutes)",
                )
            return cls(start=start_utc, duration_minutes=derived)

        if duration_minutes is None:
            duration_minutes = DEFAULT_BOOKING_DURATION_MINUTES

        return cls(start=start_utc, duration_minutes=duration_minutes)


@dataclass
class Booking:
    """A persisted claim on the shared calendar (a "service request")."""
    request_number: str
    owner_id: str
    window: BookingWindow
    status: str
    is_final: bool = False
    resource_id: Optional[str] = None
    title: str = "Service Request"
    description: str = ""
    priority: str = "Medium"
    urgency: str = "Normal"
    service_type: Optional[str] = None
    client_name: Optional[str] = None
    soft_deleted: bool = False
    created_at: Optional[DateTime] = None
    id: Optional[int] = None

    @property
    def start(self) -> DateTime:
        return self.window.start

    @property
    def end(self) -> DateTime:
        return self.window.end

    def blocks_calendar(self) -> bool:
        """Final or soft-deleted bookings no longer consume calendar space."""
        return not self.is_final and not self.soft_deleted

    def time_range(self) -> TimeRange:
        return self.window.as_range()


@dataclass(frozen=True)
class RateTierBand:
    """
    A configured rate band for one weekday.

    ``day_of_week`` follows ``datetime.weekday()``: 0=Monday, 6=Sunday.
    ``time_end`` is exclusive.
    """
    tier_name: str
    tier_level: int
    day_of_week: int
    time_start: time
    time_end: time
    rate_multiplier: float = 1.0
    color_code: str = "#28a745"
    description: str = ""

    def __post_init__(self):
        if not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be between 0 and 6, got {self.day_of_week}")
        if self.time_start >= self.time_end:
            raise ValueError(f"Band start {self.time_start} must be before end {self.time_end}")
        if self.rate_multiplier <= 0:
            raise ValueError("rate_multiplier must be greater than zero")

    def covers(self, weekday: int, local_time: time) -> bool:
        return weekday == self.day_of_week and self.time_start <= local_time < self.time_end


@dataclass(frozen=True)
class ResolvedTier:
    """The tier that applies at one instant."""
    tier_name: str
    level: int
    multiplier: float
    color_code: str = "#28a745"


STANDARD_FALLBACK_TIER = ResolvedTier(tier_name="Standard", level=0, multiplier=1.0)


@dataclass(frozen=True)
class Slot:
    """A suggested window, paired with the rate tier at its start."""
    window: BookingWindow
    tier: ResolvedTier

    @property
    def start(self) -> DateTime:
        return self.window.start

    @property
    def end(self) -> DateTime:
        return self.window.end


@dataclass(frozen=True)
class NotFound:
    """Empty slot-search result. Expected outcome, not an error."""
    message: str
    days_searched: int


@dataclass
class DayBooking:
    """A booking as shown on a business-day calendar view."""
    request_number: str
    resource_id: Optional[str]
    start: DateTime
    end: DateTime
    buffer_start: DateTime
    buffer_end: DateTime
    client_name: str
    service_type: str
    is_own_booking: bool


@dataclass(frozen=True)
class Resource:
    """A service location that bookings may be scheduled against."""
    id: str
    name: str
    resource_type: str = "Service Location"
    description: Optional[str] = None
    is_available: bool = True
