"""
Forward search for the first open booking slot.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Union

import pendulum
from pendulum import Date, DateTime

from .conflicts import ConflictEvaluator, SchedulingRules
from .exceptions import ValidationError
from .models import (
    MAX_BOOKING_DURATION_MINUTES,
    MIN_BOOKING_DURATION_MINUTES,
    Booking,
    BookingWindow,
    NotFound,
    RuleViolation,
    Slot,
    TimeRange,
)
from .rate_tiers import TIER_PREFERENCE_LEVELS, RateTierResolver
from .timezone import BusinessTimezone, parse_calendar_date

logger = logging.getLogger(__name__)

MAX_DAYS_TO_SEARCH = 30
SLOT_GRANULARITY_MINUTES = 30

# Suggestions never start sooner than this, even if minimum advance is lower.
MIN_SUGGESTION_LOOKAHEAD = pendulum.duration(hours=1)


class BlockingBookingSource(Protocol):
    """Read access to the bookings that currently occupy the calendar."""

    def fetch_blocking(self, time_range: TimeRange) -> List[Booking]:
        """Return non-final, non-deleted bookings intersecting ``time_range``."""


def validate_duration_hours(duration_hours: float) -> int:
    """
    Validate a suggestion duration and convert it to minutes.

    Raises:
        ValidationError: If the duration is outside [1, 6] hours or not a half-hour multiple
    """
    try:
        minutes = float(duration_hours) * 60
    except (TypeError, ValueError) as exc:
        raise ValidationError("duration_hours", f"Invalid duration: {duration_hours!r}") from exc

    if minutes < MIN_BOOKING_DURATION_MINUTES:
        raise ValidationError(
            "duration_hours",
            "Duration must be at least 1 hour",
            rule=RuleViolation.DURATION_TOO_SHORT,
        )
    if minutes > MAX_BOOKING_DURATION_MINUTES:
        raise ValidationError(
            "duration_hours",
            "Duration cannot exceed 6 hours",
            rule=RuleViolation.DURATION_TOO_LONG,
        )
    if minutes % SLOT_GRANULARITY_MINUTES:
        raise ValidationError(
            "duration_hours",
            "Duration must be a whole or half-hour multiple",
            rule="InvalidDuration",
        )
    return int(minutes)


def normalize_tier_preference(tier_preference: Optional[str]) -> Optional[str]:
    if tier_preference is None:
        return None
    key = tier_preference.strip().lower()
    if key not in TIER_PREFERENCE_LEVELS:
        allowed = ", ".join(TIER_PREFERENCE_LEVELS)
        raise ValidationError(
            "tier_preference",
            f"Unknown tier preference {tier_preference!r}. Expected one of: {allowed}",
        )
    return key


class SlotSearch:
    """
    Walks a 30-minute grid across business days, returning the first slot
    that passes the conflict rules and, optionally, an exact tier match.

    Business days use the full ``[00:00, 24:00)`` local boundary.
    """

    def __init__(
        self,
        bookings: BlockingBookingSource,
        business_tz: BusinessTimezone,
        tier_resolver: RateTierResolver,
        rules: SchedulingRules,
        max_days: int = MAX_DAYS_TO_SEARCH,
    ):
        self.bookings = bookings
        self.business_tz = business_tz
        self.tier_resolver = tier_resolver
        self.rules = rules
        self.evaluator = ConflictEvaluator(rules)
        self.max_days = max_days

    @property
    def lookahead(self) -> pendulum.Duration:
        return max(MIN_SUGGESTION_LOOKAHEAD, self.rules.minimum_advance)

    def suggest(
        self,
        start_date: object,
        duration_hours: float,
        tier_preference: Optional[str] = None,
        owner_id: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> Union[Slot, NotFound]:
        """
        Find the chronologically first acceptable slot.

        Args:
            start_date: First business-local calendar date to search (YYYY-MM-DD)
            duration_hours: Slot length, a half-hour multiple between 1 and 6
            tier_preference: standard, premium, emergency, any, or None
            owner_id: Client the slot is for; drives self-exempt buffers
            now: Reference instant (defaults to the current time)

        Returns:
            Slot, or NotFound when the horizon is exhausted
        """
        first_day = parse_calendar_date(start_date)
        duration_minutes = validate_duration_hours(duration_hours)
        preference = normalize_tier_preference(tier_preference)
        required_level = TIER_PREFERENCE_LEVELS[preference] if preference else None

        now = pendulum.instance(now) if now is not None else pendulum.now("UTC")
        earliest = now + self.lookahead

        logger.debug(
            "Searching %s day(s) from %s for a %s minute slot (tier=%s)",
            self.max_days, first_day, duration_minutes, preference or "any",
        )

        for offset in range(self.max_days):
            day = first_day.add(days=offset)
            slot = self._search_day(day, duration_minutes, required_level, owner_id, earliest)
            if slot:
                logger.info("Suggested slot %s (%s)", slot.window.as_range(), slot.tier.tier_name)
                return slot

        hours = f"{duration_minutes / 60:g}"
        if required_level is not None:
            message = (
                f"No available {hours}-hour {preference} slot found "
                f"in the next {self.max_days} days"
            )
        else:
            message = f"No available {hours}-hour slot found in the next {self.max_days} days"
        return NotFound(message=message, days_searched=self.max_days)

    def _search_day(
        self,
        day: Date,
        duration_minutes: int,
        required_level: Optional[int],
        owner_id: Optional[str],
        earliest: DateTime,
    ) -> Optional[Slot]:
        day_range = self.business_tz.business_day_range_utc(day)
        if day_range.end.subtract(minutes=duration_minutes) < earliest:
            return None

        margin = self.rules.buffer_policy.max_buffer()
        blocked = self.bookings.fetch_blocking(day_range.expand(margin, margin))

        grid = day_range.start
        while grid.add(minutes=duration_minutes) <= day_range.end:
            if grid >= earliest:
                window = BookingWindow(start=grid, duration_minutes=duration_minutes)
                verdict = self.evaluator.check_bookings(window, blocked, owner_id)
                if verdict.accepted:
                    tier = self.tier_resolver.resolve(grid)
                    if required_level is None or tier.level == required_level:
                        return Slot(window=window, tier=tier)
            grid = grid.add(minutes=SLOT_GRANULARITY_MINUTES)

        return None
