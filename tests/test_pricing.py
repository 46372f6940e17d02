"""
Tests for tier-based cost estimation.
"""

import pendulum
import pytest

from servicebooker.domain.models import BookingWindow
from servicebooker.domain.pricing import CostEstimator
from servicebooker.domain.rate_tiers import RateTierResolver

LA = "America/Los_Angeles"


@pytest.fixture
def estimator(default_bands, business_tz):
    return CostEstimator(RateTierResolver(default_bands, business_tz))


def window(hour, minute=0, minutes=120):
    # 2025-10-07 is a Tuesday: Standard until 17:00, Premium (1.25x) after.
    start = pendulum.datetime(2025, 10, 7, hour, minute, tz=LA)
    return BookingWindow(start=start, duration_minutes=minutes)


class TestCostEstimator:
    def test_single_tier(self, estimator):
        cost = estimator.estimate(window(9), 100.0)

        assert cost.subtotal == 200.0
        assert cost.total == 200.0
        assert len(cost.breakdown) == 1
        assert cost.breakdown[0].tier_name == "Standard"
        assert cost.breakdown[0].hours == 2.0

    def test_window_spanning_two_tiers_is_split_into_blocks(self, estimator):
        cost = estimator.estimate(window(16), 100.0)

        assert [(b.tier_name, b.hours, b.cost) for b in cost.breakdown] == [
            ("Standard", 1.0, 100.0),
            ("Premium", 1.0, 125.0),
        ]
        assert cost.subtotal == 225.0
        assert cost.hourly == 112.5

    def test_first_hour_comp_for_first_timers(self, estimator):
        cost = estimator.estimate(window(16), 100.0, first_timer=True)

        assert cost.first_hour_discount == 100.0
        assert cost.total == 125.0
        assert cost.is_first_timer

    def test_first_hour_comp_spans_blocks_chronologically(self, estimator):
        cost = estimator.estimate(window(16, 30), 100.0, first_timer=True)

        assert cost.subtotal == 237.5
        assert [(line.tier_name, line.hours, line.discount) for line in cost.first_hour_comp] == [
            ("Standard", 0.5, 50.0),
            ("Premium", 0.5, 62.5),
        ]
        assert cost.first_hour_discount == 112.5
        assert cost.total == 125.0

    def test_no_comp_for_returning_clients(self, estimator):
        cost = estimator.estimate(window(16), 100.0, first_timer=False)

        assert cost.first_hour_discount == 0.0
        assert cost.first_hour_comp == []
        assert cost.total == cost.subtotal

    def test_partial_final_increment_is_prorated(self, estimator):
        """A 75-minute window bills its last 15 minutes, not a full half hour."""
        cost = estimator.estimate(window(9, minutes=75), 100.0)

        assert cost.total_hours == 1.25
        assert sum(b.hours for b in cost.breakdown) == 1.25
        assert cost.subtotal == 125.0

    def test_partial_increment_at_tier_boundary(self, estimator):
        cost = estimator.estimate(window(16, minutes=75), 100.0)

        assert [(b.tier_name, b.hours) for b in cost.breakdown] == [
            ("Standard", 1.0),
            ("Premium", 0.25),
        ]
        assert cost.subtotal == 131.25

    def test_one_hour_first_booking_is_free(self, estimator):
        cost = estimator.estimate(window(9, minutes=60), 100.0, first_timer=True)

        assert cost.total == 0.0
