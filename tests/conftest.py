"""
Shared fixtures for the booking engine tests.
"""

from typing import List

import pendulum
import pytest

from servicebooker.adapters.booking_repository import BookingRepository
from servicebooker.adapters.database import create_db_engine, create_session_factory, init_db
from servicebooker.adapters.events import BOOKING_CREATED, BOOKING_UPDATED, EventDispatcher
from servicebooker.adapters.settings_provider import StaticSettingsProvider
from servicebooker.config import default_rate_tiers
from servicebooker.domain.models import Booking, BookingWindow, TimeRange
from servicebooker.domain.timezone import BusinessTimezone
from servicebooker.services.booking_service import BookingService

BUSINESS_TZ = "America/Los_Angeles"


def make_booking(
    owner_id: str,
    start,
    minutes: int = 60,
    request_number: str = "SR-2030-00001",
    is_final: bool = False,
) -> Booking:
    return Booking(
        request_number=request_number,
        owner_id=owner_id,
        window=BookingWindow(start=start, duration_minutes=minutes),
        status="Completed" if is_final else "Submitted",
        is_final=is_final,
    )


class InMemoryBookings:
    """Minimal stub matching the blocking-booking source protocol."""

    def __init__(self, bookings: List[Booking] = ()):
        self.bookings = list(bookings)
        self.ranges: List[TimeRange] = []

    def fetch_blocking(self, time_range):
        self.ranges.append(time_range)
        return [
            b for b in self.bookings
            if b.blocks_calendar() and b.start < time_range.end and b.end > time_range.start
        ]


class RecordingSubscriber:
    def __init__(self):
        self.events = []

    def __call__(self, event_name, payload):
        self.events.append((event_name, dict(payload)))


@pytest.fixture
def business_tz() -> BusinessTimezone:
    return BusinessTimezone(BUSINESS_TZ)


@pytest.fixture
def default_bands():
    return [tier.to_band() for tier in default_rate_tiers()]


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory, default_bands) -> BookingRepository:
    repo = BookingRepository(session_factory)
    repo.seed_statuses()
    repo.replace_rate_tiers(default_bands)
    return repo


@pytest.fixture
def settings() -> StaticSettingsProvider:
    return StaticSettingsProvider({"business_timezone": BUSINESS_TZ})


@pytest.fixture
def subscriber() -> RecordingSubscriber:
    return RecordingSubscriber()


@pytest.fixture
def now():
    return pendulum.datetime(2025, 10, 1, 12, 0, tz="UTC")


@pytest.fixture
def service(repository, settings, subscriber, now) -> BookingService:
    dispatcher = EventDispatcher()
    dispatcher.subscribe(BOOKING_CREATED, subscriber)
    dispatcher.subscribe(BOOKING_UPDATED, subscriber)
    return BookingService(repository, settings, publisher=dispatcher, clock=lambda: now)
