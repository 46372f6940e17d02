"""
Rate tier lookup by business-local weekday and time of day.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from pendulum import DateTime

from .models import STANDARD_FALLBACK_TIER, RateTierBand, ResolvedTier
from .timezone import BusinessTimezone

# Tier preference keywords accepted by the slot search. None disables filtering.
TIER_PREFERENCE_LEVELS: Dict[str, Optional[int]] = {
    "standard": 1,
    "premium": 2,
    "emergency": 3,
    "any": None,
}


class RateTierResolver:
    """
    Resolves the rate tier that applies at an absolute instant.

    Bands are grouped per weekday and ordered by tier level descending, then
    start time; the first band containing the local time wins. Instants with
    no matching band fall back to the implicit Standard tier (level 0,
    multiplier 1.0).
    """

    def __init__(self, bands: Iterable[RateTierBand], business_tz: BusinessTimezone):
        self.business_tz = business_tz
        self._bands_by_day: Dict[int, List[RateTierBand]] = {day: [] for day in range(7)}

        for band in bands:
            self._bands_by_day[band.day_of_week].append(band)

        for day_bands in self._bands_by_day.values():
            day_bands.sort(key=lambda b: (-b.tier_level, b.time_start))

    @property
    def bands(self) -> List[RateTierBand]:
        return [band for day in range(7) for band in self._bands_by_day[day]]

    def resolve(self, instant: DateTime) -> ResolvedTier:
        local = self.business_tz.to_business_local(instant)
        weekday = local.weekday()
        local_time = local.time()

        for band in self._bands_by_day[weekday]:
            if band.covers(weekday, local_time):
                return ResolvedTier(
                    tier_name=band.tier_name,
                    level=band.tier_level,
                    multiplier=band.rate_multiplier,
                    color_code=band.color_code,
                )

        return STANDARD_FALLBACK_TIER
