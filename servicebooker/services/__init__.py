"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .booking_service import (
    BookingMetadata,
    BookingOutcome,
    BookingService,
    CancellationResult,
)

__all__ = ["BookingMetadata", "BookingOutcome", "BookingService", "CancellationResult"]
