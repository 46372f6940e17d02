"""
Application service for creating, listing, suggesting and cancelling bookings.

The service coordinates the booking store, the scheduler settings source and
the event publisher, and delegates every scheduling decision to the domain
layer. Settings are read once per call and threaded explicitly into the
evaluator and the slot search; nothing is cached between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Union

import pendulum
from pendulum import DateTime

from ..adapters.booking_repository import BookingRepository
from ..adapters.events import BOOKING_CREATED, BOOKING_UPDATED, BookingEventPublisher, NullPublisher
from ..adapters.settings_provider import SettingsProvider
from ..config import SchedulerConfig
from ..domain.conflicts import ConflictEvaluator, Reject
from ..domain.exceptions import (
    BookingLimitReached,
    BookingNotFound,
    CancellationNotAllowed,
    ValidationError,
)
from ..domain.models import (
    Booking,
    BookingWindow,
    DayBooking,
    NotFound,
    RateTierBand,
    Resource,
    Slot,
)
from ..domain.pricing import CostEstimate, CostEstimator
from ..domain.rate_tiers import RateTierResolver
from ..domain.slot_search import SlotSearch

logger = logging.getLogger(__name__)

OWN_BOOKING_LABEL = "You"
OTHER_CLIENT_LABEL = "Client"
LATE_CANCELLATION_WINDOW = pendulum.duration(hours=1)

DEFAULT_PRIORITY = "Medium"
DEFAULT_URGENCY = "Normal"
DEFAULT_TITLE = "Service Request"


@dataclass
class BookingMetadata:
    """Optional descriptive fields supplied with a create request."""
    title: str = DEFAULT_TITLE
    description: str = ""
    priority: Optional[str] = None
    urgency: Optional[str] = None
    service_type: Optional[str] = None
    client_name: Optional[str] = None


@dataclass
class BookingOutcome:
    """Result of a create request: either the stored booking or the rule it broke."""
    booking: Optional[Booking] = None
    rejection: Optional[Reject] = None

    @property
    def created(self) -> bool:
        return self.booking is not None


@dataclass
class CancellationResult:
    booking: Booking
    late_cancellation: bool


def _utc_now() -> DateTime:
    return pendulum.now("UTC")


class BookingService:
    """
    Entry point for every booking operation.

    Dependency inversion toward the settings and publisher protocols lets the
    CLI use the database-backed implementations while tests pass static ones.
    """

    def __init__(
        self,
        repository: BookingRepository,
        settings_provider: SettingsProvider,
        publisher: Optional[BookingEventPublisher] = None,
        clock: Callable[[], DateTime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._settings = settings_provider
        self._publisher = publisher or NullPublisher()
        self._clock = clock

    def scheduler_config(self) -> SchedulerConfig:
        """Current scheduler settings with fallbacks applied."""
        return SchedulerConfig.from_settings(self._settings)

    def rate_tiers(self) -> List[RateTierBand]:
        return self._repository.load_rate_tiers()

    def list_resources(self) -> List[Resource]:
        """Active service locations a booking may name."""
        return self._repository.list_resources()

    def _require_active_resource(self, resource_id: str) -> None:
        if not self._repository.is_active_resource(resource_id):
            raise ValidationError(
                "resource_id", f"Unknown or inactive service location: {resource_id}"
            )

    def _tier_resolver(self, config: SchedulerConfig) -> RateTierResolver:
        return RateTierResolver(self._repository.load_rate_tiers(), config.business_tz())

    def create_booking(
        self,
        owner_id: str,
        start: datetime,
        end: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        resource_id: Optional[str] = None,
        metadata: Optional[BookingMetadata] = None,
        now: Optional[DateTime] = None,
    ) -> BookingOutcome:
        """
        Validate and persist a booking.

        Evaluation and insert run inside one serialized store transaction, so a
        concurrent request for an overlapping window observes this booking and
        is rejected with ``Overlap``.

        Returns:
            BookingOutcome holding the new booking or the rejection

        Raises:
            ValidationError: Missing owner, malformed window or unknown service location
            BookingLimitReached: Owner already holds the maximum open bookings
            ConfigurationUnavailable: Timezone or default status not configured
            StoreError: The store could not be read or written
        """
        if not owner_id:
            raise ValidationError("owner_id", "Owner is required")

        window = BookingWindow.from_input(start, end=end, duration_minutes=duration_minutes)
        metadata = metadata or BookingMetadata()
        config = self.scheduler_config()
        business_tz = config.business_tz()
        rules = config.scheduling_rules()
        evaluator = ConflictEvaluator(rules)
        now = now or self._clock()

        # Store-independent rules are settled before the writer lock is taken.
        early = evaluator.check_minimum_advance(window, now) or evaluator.check_duration(window)
        if early is not None:
            logger.info(
                "Rejected booking for %s at %s: %s", owner_id, window.as_range(), early.rule.value
            )
            return BookingOutcome(rejection=early)

        if resource_id is not None:
            self._require_active_resource(resource_id)

        margin = rules.buffer_policy.max_buffer()
        scope = window.as_range().expand(margin, margin)

        with self._repository.writer() as writer:
            open_count = writer.count_open_for_owner(owner_id)
            if open_count >= config.max_open_requests:
                raise BookingLimitReached(
                    f"You have reached the maximum of {config.max_open_requests} open "
                    f"service requests. Please wait for existing requests to be completed "
                    f"or cancel some before creating new ones."
                )

            verdict = evaluator.evaluate(window, writer.fetch_blocking(scope), owner_id, now)
            if isinstance(verdict, Reject):
                logger.info(
                    "Rejected booking for %s at %s: %s",
                    owner_id, window.as_range(), verdict.rule.value,
                )
                return BookingOutcome(rejection=verdict)

            status = writer.default_status()
            year = business_tz.business_date_of(now).year
            candidate = Booking(
                request_number=writer.next_request_number(year),
                owner_id=owner_id,
                window=window,
                status=status.name,
                is_final=status.is_final,
                resource_id=resource_id,
                title=metadata.title or DEFAULT_TITLE,
                description=metadata.description or "",
                priority=metadata.priority or DEFAULT_PRIORITY,
                urgency=metadata.urgency or DEFAULT_URGENCY,
                service_type=metadata.service_type,
                client_name=metadata.client_name,
            )
            booking = writer.insert(candidate, status)

        logger.info("Created %s for %s at %s", booking.request_number, owner_id, window.as_range())
        self._publisher.publish(BOOKING_CREATED, self._event_payload(booking))
        return BookingOutcome(booking=booking)

    def list_bookings_for_day(self, date: object, caller_id: Optional[str] = None) -> List[DayBooking]:
        """
        Bookings occupying a business-local calendar day.

        Other clients' bookings are listed too, so callers can avoid them;
        only the caller's own are labelled as such.
        """
        config = self.scheduler_config()
        day_range = config.business_tz().business_day_range_utc(date)
        policy = config.make_buffer_policy()

        result: List[DayBooking] = []
        for booking in self._repository.fetch_blocking(day_range):
            own = caller_id is not None and booking.owner_id == caller_id
            before, after = policy.buffers_for(booking, caller_id)
            result.append(
                DayBooking(
                    request_number=booking.request_number,
                    resource_id=booking.resource_id,
                    start=booking.start,
                    end=booking.end,
                    buffer_start=booking.start - before,
                    buffer_end=booking.end + after,
                    client_name=OWN_BOOKING_LABEL if own else (booking.client_name or OTHER_CLIENT_LABEL),
                    service_type=booking.service_type or DEFAULT_TITLE,
                    is_own_booking=own,
                )
            )
        return result

    def suggest_slot(
        self,
        date: object,
        duration_hours: Optional[float] = None,
        tier_preference: Optional[str] = None,
        owner_id: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> Union[Slot, NotFound]:
        """First acceptable slot on or after ``date``; duration defaults to the configured one."""
        config = self.scheduler_config()
        if duration_hours is None:
            duration_hours = config.default_slot_duration_hours

        search = SlotSearch(
            bookings=self._repository,
            business_tz=config.business_tz(),
            tier_resolver=self._tier_resolver(config),
            rules=config.scheduling_rules(),
        )
        return search.suggest(
            date,
            duration_hours,
            tier_preference=tier_preference,
            owner_id=owner_id,
            now=now or self._clock(),
        )

    def is_first_timer(self, owner_id: str) -> bool:
        """True when the owner has never created a (non-deleted) booking."""
        return self._repository.count_all_for_owner(owner_id) == 0

    def estimate_cost(
        self,
        start: datetime,
        end: Optional[datetime] = None,
        duration_minutes: Optional[int] = None,
        owner_id: Optional[str] = None,
    ) -> CostEstimate:
        window = BookingWindow.from_input(start, end=end, duration_minutes=duration_minutes)
        config = self.scheduler_config()
        first_timer = self.is_first_timer(owner_id) if owner_id else False
        estimator = CostEstimator(self._tier_resolver(config))
        return estimator.estimate(window, config.base_hourly_rate, first_timer=first_timer)

    def cancel_booking(
        self,
        request_number: str,
        owner_id: str,
        reason: Optional[str] = None,
        now: Optional[DateTime] = None,
    ) -> CancellationResult:
        """
        Cancel one of the owner's bookings before it starts.

        Raises:
            BookingNotFound: Unknown request number, or owned by someone else
            CancellationNotAllowed: Booking is final or already started
        """
        now = now or self._clock()

        with self._repository.writer() as writer:
            record = writer.get_record(request_number)
            if record is None or record.owner_id != owner_id:
                raise BookingNotFound(f"Service request {request_number} not found")
            if record.status.is_final:
                raise CancellationNotAllowed(
                    f"Service request {request_number} is already {record.status.name}"
                )
            if record.starts_at <= now:
                raise CancellationNotAllowed(
                    f"Service request {request_number} has already started"
                )

            late = record.starts_at - now < LATE_CANCELLATION_WINDOW
            booking = writer.mark_cancelled(record, now, reason, late)

        logger.info("Cancelled %s for %s (late=%s)", request_number, owner_id, late)
        payload = self._event_payload(booking)
        payload["late_cancellation"] = late
        payload["reason"] = reason
        self._publisher.publish(BOOKING_UPDATED, payload)
        return CancellationResult(booking=booking, late_cancellation=late)

    @staticmethod
    def _event_payload(booking: Booking) -> dict:
        return {
            "request_number": booking.request_number,
            "owner_id": booking.owner_id,
            "resource_id": booking.resource_id,
            "start": booking.start.to_iso8601_string(),
            "end": booking.end.to_iso8601_string(),
            "status": booking.status,
        }
