"""
Conflict evaluation for a candidate booking window.

Rules are applied in a fixed precedence order and the first violation wins:

1. Minimum advance notice
2. Duration bounds (1h - 6h)
3. Per existing booking, in start order:
   a. Direct overlap
   b. Insufficient trailing buffer (candidate starts inside b.end + after)
   c. Insufficient leading buffer (candidate ends inside b.start - before)

Conflicts are system-wide: every non-final, non-deleted booking counts,
whatever resource it occupies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

import pendulum
from pendulum import DateTime

from .buffer_policy import BufferPolicy
from .models import (
    MAX_BOOKING_DURATION_MINUTES,
    MIN_BOOKING_DURATION_MINUTES,
    Booking,
    BookingWindow,
    RuleViolation,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingRules:
    """Per-request scheduling parameters threaded into the evaluator."""
    buffer_policy: BufferPolicy
    minimum_advance: pendulum.Duration = field(default_factory=lambda: pendulum.duration(hours=1))
    min_duration_minutes: int = MIN_BOOKING_DURATION_MINUTES
    max_duration_minutes: int = MAX_BOOKING_DURATION_MINUTES


@dataclass(frozen=True)
class Accept:
    """The candidate window satisfies every rule."""
    window: BookingWindow

    accepted = True


@dataclass(frozen=True)
class Reject:
    """
    The candidate window broke ``rule``.

    Only the fields relevant to the rule are set: ``earliest_start`` for
    MinimumAdvance/BufferAfter, ``latest_end`` for BufferBefore,
    ``conflicting_start``/``conflicting_end`` for the booking-relative rules
    and ``requested_minutes`` for the duration rules.
    """
    rule: RuleViolation
    message: str
    earliest_start: Optional[DateTime] = None
    latest_end: Optional[DateTime] = None
    conflicting_start: Optional[DateTime] = None
    conflicting_end: Optional[DateTime] = None
    conflicting_request: Optional[str] = None
    requested_minutes: Optional[int] = None

    accepted = False

    def to_dict(self) -> dict:
        detail = {"rule": self.rule.value, "message": self.message}
        for key in (
            "earliest_start",
            "latest_end",
            "conflicting_start",
            "conflicting_end",
        ):
            value = getattr(self, key)
            if value is not None:
                detail[key] = value.to_iso8601_string()
        if self.conflicting_request:
            detail["conflicting_request"] = self.conflicting_request
        if self.requested_minutes is not None:
            detail["requested_minutes"] = self.requested_minutes
        return detail


Evaluation = Union[Accept, Reject]


class ConflictEvaluator:
    """
    Decides whether a candidate window may be booked against existing bookings.

    The evaluator is stateless apart from its rules; every call works on the
    bookings passed in, fetched fresh by the caller.
    """

    def __init__(self, rules: SchedulingRules):
        self.rules = rules

    def evaluate(
        self,
        candidate: BookingWindow,
        existing: Iterable[Booking],
        owner_id: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> Evaluation:
        """
        Apply every rule in precedence order.

        Args:
            candidate: Proposed window
            existing: Bookings that may conflict (non-final ones are considered)
            owner_id: Client proposing the window, used by self-exempt buffers
            now: Reference instant for the advance-notice rule

        Returns:
            Accept, or Reject naming the first rule violated
        """
        now = now or pendulum.now("UTC")

        rejection = self.check_minimum_advance(candidate, now)
        if rejection:
            return rejection

        rejection = self.check_duration(candidate)
        if rejection:
            return rejection

        return self.check_bookings(candidate, existing, owner_id)

    def check_minimum_advance(self, candidate: BookingWindow, now: DateTime) -> Optional[Reject]:
        earliest = now + self.rules.minimum_advance
        if candidate.start < earliest:
            hours = self.rules.minimum_advance.total_seconds() / 3600
            return Reject(
                rule=RuleViolation.MINIMUM_ADVANCE,
                message=f"Appointments must be scheduled at least {hours:g} hour(s) in the future",
                earliest_start=earliest,
            )
        return None

    def check_duration(self, candidate: BookingWindow) -> Optional[Reject]:
        minutes = candidate.duration_minutes
        if minutes < self.rules.min_duration_minutes:
            return Reject(
                rule=RuleViolation.DURATION_TOO_SHORT,
                message=(
                    f"Appointment duration must be at least "
                    f"{self.rules.min_duration_minutes / 60:g} hour(s)"
                ),
                requested_minutes=minutes,
            )
        if minutes > self.rules.max_duration_minutes:
            return Reject(
                rule=RuleViolation.DURATION_TOO_LONG,
                message=(
                    f"Appointment duration cannot exceed "
                    f"{self.rules.max_duration_minutes / 60:g} hours"
                ),
                requested_minutes=minutes,
            )
        return None

    def check_bookings(
        self,
        candidate: BookingWindow,
        existing: Iterable[Booking],
        owner_id: Optional[str] = None,
    ) -> Evaluation:
        """Apply the overlap and buffer rules against each blocking booking."""
        start = candidate.start
        end = candidate.end

        blocking: List[Booking] = sorted(
            (b for b in existing if b.blocks_calendar()),
            key=lambda b: b.start,
        )

        for booking in blocking:
            before, after = self.rules.buffer_policy.buffers_for(booking, owner_id)

            if start < booking.end and end > booking.start:
                logger.debug("Overlap: %s against %s", candidate.as_range(), booking.request_number)
                return Reject(
                    rule=RuleViolation.OVERLAP,
                    message=(
                        "Appointment overlaps with an existing service request "
                        f"({booking.start.to_iso8601_string()} - {booking.end.to_iso8601_string()})"
                    ),
                    conflicting_start=booking.start,
                    conflicting_end=booking.end,
                    conflicting_request=booking.request_number,
                )

            earliest = booking.end + after
            if booking.end <= start < earliest:
                return Reject(
                    rule=RuleViolation.BUFFER_AFTER,
                    message=(
                        "Must wait until the buffer after the appointment ending at "
                        f"{booking.end.to_iso8601_string()} has passed"
                    ),
                    earliest_start=earliest,
                    conflicting_end=booking.end,
                    conflicting_request=booking.request_number,
                )

            latest = booking.start - before
            if latest < end <= booking.start:
                return Reject(
                    rule=RuleViolation.BUFFER_BEFORE,
                    message=(
                        "Must end before the buffer ahead of the appointment starting at "
                        f"{booking.start.to_iso8601_string()}"
                    ),
                    latest_end=latest,
                    conflicting_start=booking.start,
                    conflicting_request=booking.request_number,
                )

        return Accept(window=candidate)
