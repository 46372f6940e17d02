"""
Buffer policies: how much idle time must surround an existing booking.

Two named strategies are available:

- ``symmetric_universal``: a fixed buffer on both sides of every booking,
  regardless of who owns it.
- ``asymmetric_self_exempt``: configurable before/after hours, waived
  entirely when the existing booking belongs to the same client. Overlap
  with one's own booking is still rejected by the evaluator.
"""

from __future__ import annotations

from typing import Optional, Protocol, Tuple

import pendulum

from .exceptions import ConfigurationUnavailable
from .models import Booking

SYMMETRIC_UNIVERSAL = "symmetric_universal"
ASYMMETRIC_SELF_EXEMPT = "asymmetric_self_exempt"

NO_BUFFER = pendulum.duration()


class BufferPolicy(Protocol):
    """Protocol describing the buffer lookup used by the conflict evaluator."""

    name: str

    def buffers_for(
        self,
        existing: Booking,
        candidate_owner_id: Optional[str],
    ) -> Tuple[pendulum.Duration, pendulum.Duration]:
        """Return (buffer_before, buffer_after) to apply around ``existing``."""

    def max_buffer(self) -> pendulum.Duration:
        """Largest buffer this policy can apply on either side."""


class SymmetricUniversalBuffer:
    """Same buffer before and after every booking, for every owner."""

    name = SYMMETRIC_UNIVERSAL

    def __init__(self, hours: float = 1):
        self.buffer = pendulum.duration(minutes=int(hours * 60))

    def buffers_for(self, existing, candidate_owner_id):
        return self.buffer, self.buffer

    def max_buffer(self) -> pendulum.Duration:
        return self.buffer


class AsymmetricSelfExemptBuffer:
    """Distinct before/after buffers, waived against the candidate owner's own bookings."""

    name = ASYMMETRIC_SELF_EXEMPT

    def __init__(self, before_hours: float, after_hours: float):
        self.before = pendulum.duration(minutes=int(before_hours * 60))
        self.after = pendulum.duration(minutes=int(after_hours * 60))

    def buffers_for(self, existing, candidate_owner_id):
        if candidate_owner_id is not None and existing.owner_id == candidate_owner_id:
            return NO_BUFFER, NO_BUFFER
        return self.before, self.after

    def max_buffer(self) -> pendulum.Duration:
        return max(self.before, self.after)


def build_buffer_policy(
    name: str,
    buffer_before_hours: float,
    buffer_after_hours: float,
) -> BufferPolicy:
    """
    Select a buffer policy by its configured name.

    The symmetric policy always uses a fixed one-hour buffer; the configured
    before/after hours only apply to the self-exempt policy.
    """
    if name == SYMMETRIC_UNIVERSAL:
        return SymmetricUniversalBuffer(hours=1)
    if name == ASYMMETRIC_SELF_EXEMPT:
        return AsymmetricSelfExemptBuffer(buffer_before_hours, buffer_after_hours)
    raise ConfigurationUnavailable(f"Unknown buffer policy: {name!r}")
