"""
Tests for the conflict evaluator and buffer policies.
"""

import itertools

import pendulum
import pytest

from servicebooker.domain.buffer_policy import (
    AsymmetricSelfExemptBuffer,
    SymmetricUniversalBuffer,
    build_buffer_policy,
)
from servicebooker.domain.conflicts import Accept, ConflictEvaluator, Reject, SchedulingRules
from servicebooker.domain.exceptions import ConfigurationUnavailable
from servicebooker.domain.models import BookingWindow, RuleViolation

from conftest import make_booking

NOW = pendulum.datetime(2030, 1, 1, 0, 0, tz="UTC")


def at(hour, minute=0):
    return pendulum.datetime(2030, 1, 15, hour, minute, tz="UTC")


def window(hour, minute=0, minutes=60):
    return BookingWindow(start=at(hour, minute), duration_minutes=minutes)


def evaluator(before=2, after=1, minimum_advance_hours=1):
    rules = SchedulingRules(
        buffer_policy=AsymmetricSelfExemptBuffer(before, after),
        minimum_advance=pendulum.duration(hours=minimum_advance_hours),
    )
    return ConflictEvaluator(rules)


@pytest.fixture
def existing():
    """Another client's booking 10:00-11:00."""
    return [make_booking("bob", at(10))]


class TestBufferScenario:
    """Existing 10:00-11:00, two hours before, one hour after."""

    def test_other_client_inside_trailing_buffer_is_rejected(self, existing):
        result = evaluator().evaluate(window(11, 30), existing, owner_id="alice", now=NOW)

        assert isinstance(result, Reject)
        assert result.rule == RuleViolation.BUFFER_AFTER
        assert result.earliest_start == at(12)

    def test_same_client_is_exempt_from_buffers(self, existing):
        result = evaluator().evaluate(window(11, 30), existing, owner_id="bob", now=NOW)

        assert isinstance(result, Accept)
        assert result.accepted

    def test_start_exactly_at_existing_end_hits_trailing_buffer(self, existing):
        result = evaluator().evaluate(window(11), existing, owner_id="alice", now=NOW)

        assert result.rule == RuleViolation.BUFFER_AFTER

    def test_start_at_buffer_edge_is_accepted(self, existing):
        result = evaluator().evaluate(window(12), existing, owner_id="alice", now=NOW)

        assert result.accepted

    def test_other_client_inside_leading_buffer_is_rejected(self, existing):
        result = evaluator().evaluate(window(7, minutes=90), existing, owner_id="alice", now=NOW)

        assert result.rule == RuleViolation.BUFFER_BEFORE
        assert result.latest_end == at(8)

    def test_end_at_leading_buffer_edge_is_accepted(self, existing):
        result = evaluator().evaluate(window(7), existing, owner_id="alice", now=NOW)

        assert result.accepted

    def test_overlap_with_own_booking_is_still_rejected(self, existing):
        result = evaluator().evaluate(window(10, 30), existing, owner_id="bob", now=NOW)

        assert result.rule == RuleViolation.OVERLAP
        assert result.conflicting_start == at(10)
        assert result.conflicting_end == at(11)

    def test_final_bookings_are_ignored(self):
        cancelled = [make_booking("bob", at(10), is_final=True)]

        result = evaluator().evaluate(window(10), cancelled, owner_id="alice", now=NOW)

        assert result.accepted

    def test_rejection_detail_serializes(self, existing):
        result = evaluator().evaluate(window(11, 30), existing, owner_id="alice", now=NOW)

        detail = result.to_dict()

        assert detail["rule"] == "BufferAfter"
        assert detail["earliest_start"] == "2030-01-15T12:00:00Z"
        assert detail["conflicting_request"] == "SR-2030-00001"


class TestRulePrecedence:
    def test_minimum_advance(self):
        now = at(9, 30)

        result = evaluator().evaluate(window(10), [], now=now)

        assert result.rule == RuleViolation.MINIMUM_ADVANCE
        assert result.earliest_start == at(10, 30)

    def test_minimum_advance_precedes_duration(self):
        result = evaluator().evaluate(window(10, minutes=30), [], now=at(10))

        assert result.rule == RuleViolation.MINIMUM_ADVANCE

    def test_duration_precedes_overlap(self, existing):
        result = evaluator().evaluate(window(10, minutes=30), existing, now=NOW)

        assert result.rule == RuleViolation.DURATION_TOO_SHORT

    def test_duration_too_short(self):
        result = evaluator().evaluate(window(10, minutes=30), [], now=NOW)

        assert result.rule == RuleViolation.DURATION_TOO_SHORT
        assert result.requested_minutes == 30

    def test_duration_too_long(self):
        result = evaluator().evaluate(window(10, minutes=7 * 60), [], now=NOW)

        assert result.rule == RuleViolation.DURATION_TOO_LONG

    def test_duration_bounds_are_inclusive(self):
        assert evaluator().evaluate(window(10, minutes=60), [], now=NOW).accepted
        assert evaluator().evaluate(window(10, minutes=360), [], now=NOW).accepted

    def test_earliest_existing_booking_is_reported_first(self):
        bookings = [
            make_booking("bob", at(13), request_number="SR-2030-00002"),
            make_booking("bob", at(10), request_number="SR-2030-00001"),
        ]

        result = evaluator().evaluate(window(9, minutes=300), bookings, owner_id="alice", now=NOW)

        assert result.rule == RuleViolation.OVERLAP
        assert result.conflicting_request == "SR-2030-00001"


class TestBufferPolicies:
    def test_symmetric_policy_applies_to_own_bookings(self, existing):
        rules = SchedulingRules(buffer_policy=SymmetricUniversalBuffer())
        result = ConflictEvaluator(rules).evaluate(window(11, 30), existing, owner_id="bob", now=NOW)

        assert result.rule == RuleViolation.BUFFER_AFTER
        assert result.earliest_start == at(12)

    def test_symmetric_policy_leading_buffer_is_one_hour(self, existing):
        rules = SchedulingRules(buffer_policy=SymmetricUniversalBuffer())
        evaluate = ConflictEvaluator(rules).evaluate

        assert evaluate(window(8), existing, owner_id="alice", now=NOW).accepted
        assert evaluate(window(8, 30), existing, owner_id="alice", now=NOW).rule == RuleViolation.BUFFER_BEFORE

    def test_build_by_name(self):
        assert build_buffer_policy("symmetric_universal", 2, 1).max_buffer() == pendulum.duration(hours=1)
        assert build_buffer_policy("asymmetric_self_exempt", 2, 1).max_buffer() == pendulum.duration(hours=2)

    def test_unknown_policy_name(self):
        with pytest.raises(ConfigurationUnavailable):
            build_buffer_policy("whatever", 2, 1)


class TestBufferMonotonicity:
    """A larger buffer never accepts a candidate that a smaller one rejects."""

    BUFFER_SIZES = [0, 0.5, 1, 2, 3]

    def test_rejections_are_monotonic_in_buffer_size(self):
        existing = [
            make_booking("bob", at(10), request_number="SR-2030-00001"),
            make_booking("carol", at(14), minutes=90, request_number="SR-2030-00002"),
        ]
        candidates = [
            window(hour, minute, minutes)
            for hour in range(4, 19)
            for minute in (0, 30)
            for minutes in (60, 120)
        ]

        for small, large in itertools.combinations(self.BUFFER_SIZES, 2):
            for before_small, after_small, before_large, after_large in (
                (small, 0, large, 0),
                (0, small, 0, large),
                (small, small, large, large),
            ):
                lenient = evaluator(before_small, after_small)
                strict = evaluator(before_large, after_large)
                for candidate in candidates:
                    if not lenient.evaluate(candidate, existing, owner_id="alice", now=NOW).accepted:
                        assert not strict.evaluate(candidate, existing, owner_id="alice", now=NOW).accepted
