"""
Cost estimation for a booking window priced by rate tier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .models import BookingWindow
from .rate_tiers import RateTierResolver

PRICING_INCREMENT_MINUTES = 30
FIRST_HOUR_COMP_HOURS = 1.0


@dataclass
class TierBlock:
    """A contiguous run of increments billed at the same tier."""
    tier_name: str
    multiplier: float
    hours: float
    cost: float


@dataclass
class CompLine:
    tier_name: str
    multiplier: float
    hours: float
    discount: float


@dataclass
class CostEstimate:
    """Priced breakdown of a window. ``total`` never drops below zero."""
    base_hourly_rate: float
    total_hours: float
    subtotal: float
    first_hour_discount: float
    total: float
    breakdown: List[TierBlock] = field(default_factory=list)
    first_hour_comp: List[CompLine] = field(default_factory=list)
    is_first_timer: bool = False

    @property
    def hourly(self) -> float:
        if not self.total_hours:
            return 0.0
        return self.subtotal / self.total_hours


class CostEstimator:
    def __init__(self, tier_resolver: RateTierResolver):
        self.tier_resolver = tier_resolver

    def estimate(
        self,
        window: BookingWindow,
        base_hourly_rate: float,
        first_timer: bool = False,
    ) -> CostEstimate:
        """
        Price ``window`` in half-hour increments, resolving the tier at each.

        First-time clients get the first hour comped, discounted block by block
        in chronological order at each block's own multiplier.
        """
        blocks: List[TierBlock] = []
        subtotal = 0.0

        cursor = window.start
        while cursor < window.end:
            # The last increment covers only the minutes left in the window.
            step_minutes = min(
                PRICING_INCREMENT_MINUTES, int((window.end - cursor).total_seconds() // 60)
            )
            increment_hours = step_minutes / 60
            tier = self.tier_resolver.resolve(cursor)
            increment_cost = base_hourly_rate * tier.multiplier * increment_hours
            subtotal += increment_cost

            last = blocks[-1] if blocks else None
            if last and last.tier_name == tier.tier_name and last.multiplier == tier.multiplier:
                last.hours += increment_hours
                last.cost += increment_cost
            else:
                blocks.append(
                    TierBlock(
                        tier_name=tier.tier_name,
                        multiplier=tier.multiplier,
                        hours=increment_hours,
                        cost=increment_cost,
                    )
                )
            cursor = cursor.add(minutes=step_minutes)

        comp: List[CompLine] = []
        discount = 0.0
        total_hours = window.duration_hours

        if first_timer and total_hours >= FIRST_HOUR_COMP_HOURS:
            remaining = FIRST_HOUR_COMP_HOURS
            for block in blocks:
                if remaining <= 0:
                    break
                hours = min(block.hours, remaining)
                line_discount = hours * base_hourly_rate * block.multiplier
                comp.append(
                    CompLine(
                        tier_name=block.tier_name,
                        multiplier=block.multiplier,
                        hours=hours,
                        discount=line_discount,
                    )
                )
                discount += line_discount
                remaining -= hours

        return CostEstimate(
            base_hourly_rate=base_hourly_rate,
            total_hours=total_hours,
            subtotal=round(subtotal, 2),
            first_hour_discount=round(discount, 2),
            total=round(max(0.0, subtotal - discount), 2),
            breakdown=blocks,
            first_hour_comp=comp,
            is_first_timer=first_timer,
        )
