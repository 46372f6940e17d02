"""
Business timezone normalization.

A calendar date supplied by a caller ("2025-10-07") is expressed in the
business's configured timezone. That business-local day generally spans two
UTC calendar dates, so every range query must compare UTC timestamps against
the converted range, never UTC date strings.
"""

from __future__ import annotations

import re
from datetime import date, datetime

import pendulum
from pendulum import Date, DateTime

from .exceptions import ConfigurationUnavailable, InvalidDateFormat
from .models import TimeRange

_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def parse_calendar_date(value: object) -> Date:
    """
    Parse a YYYY-MM-DD calendar date.

    Longer ISO strings ("2025-10-07T09:00:00") are accepted and truncated to
    their date part.

    Raises:
        InvalidDateFormat: If the value is not a string starting with a valid date
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return Date(value.year, value.month, value.day)

    if not isinstance(value, str):
        raise InvalidDateFormat(value)

    match = _DATE_PREFIX.match(value.strip())
    if not match:
        raise InvalidDateFormat(value)

    year, month, day = (int(part) for part in match.groups())
    try:
        return Date(year, month, day)
    except ValueError as exc:
        raise InvalidDateFormat(value) from exc


class BusinessTimezone:
    """
    Converts between business-local calendar days and absolute UTC instants.
    """

    def __init__(self, timezone_name: str | None):
        if not timezone_name:
            raise ConfigurationUnavailable(
                "No business timezone configured; refusing to assume UTC."
            )
        try:
            self.timezone = pendulum.timezone(timezone_name)
        except (ValueError, KeyError) as exc:
            raise ConfigurationUnavailable(f"Unknown business timezone: {timezone_name}") from exc
        self.name = timezone_name

    def start_of_day(self, day: Date) -> DateTime:
        """Business-local midnight of ``day``, in the business timezone."""
        return pendulum.datetime(day.year, day.month, day.day, tz=self.timezone)

    def business_day_range_utc(self, value: object) -> TimeRange:
        """
        Get the UTC range ``[00:00 local, 00:00 local next day)`` for a business day.

        The range is 23, 24 or 25 hours long depending on DST transitions.

        Args:
            value: Calendar date (YYYY-MM-DD string or date)

        Returns:
            TimeRange with UTC start and end
        """
        day = parse_calendar_date(value)
        start = self.start_of_day(day)
        end = self.start_of_day(day.add(days=1))
        return TimeRange(start=start.in_timezone("UTC"), end=end.in_timezone("UTC"))

    def to_business_local(self, instant: DateTime) -> DateTime:
        return pendulum.instance(instant).in_timezone(self.timezone)

    def business_date_of(self, instant: DateTime) -> Date:
        return self.to_business_local(instant).date()

    def now(self) -> DateTime:
        return pendulum.now(self.timezone)
