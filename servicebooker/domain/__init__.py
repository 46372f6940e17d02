"""
Domain layer - Pure scheduling logic without storage dependencies.
"""

from .buffer_policy import (
    AsymmetricSelfExemptBuffer,
    BufferPolicy,
    SymmetricUniversalBuffer,
    build_buffer_policy,
)
from .conflicts import Accept, ConflictEvaluator, Reject, SchedulingRules
from .models import (
    Booking,
    BookingWindow,
    DayBooking,
    NotFound,
    RateTierBand,
    ResolvedTier,
    Resource,
    RuleViolation,
    Slot,
    TimeRange,
)
from .pricing import CostEstimate, CostEstimator
from .rate_tiers import RateTierResolver
from .slot_search import SlotSearch
from .timezone import BusinessTimezone, parse_calendar_date

__all__ = [
    "Accept",
    "AsymmetricSelfExemptBuffer",
    "Booking",
    "BookingWindow",
    "BufferPolicy",
    "BusinessTimezone",
    "ConflictEvaluator",
    "CostEstimate",
    "CostEstimator",
    "DayBooking",
    "NotFound",
    "RateTierBand",
    "RateTierResolver",
    "Reject",
    "ResolvedTier",
    "Resource",
    "RuleViolation",
    "SchedulingRules",
    "Slot",
    "SlotSearch",
    "SymmetricUniversalBuffer",
    "TimeRange",
    "build_buffer_policy",
    "parse_calendar_date",
]
