"""
Outbound booking events.

Subscribers (notifications, real-time broadcast) are fire-and-forget from the
engine's point of view: a failing subscriber is logged and never fails the
booking operation that triggered it.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Protocol

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_UPDATED = "booking.updated"

Subscriber = Callable[[str, Mapping[str, Any]], None]


class BookingEventPublisher(Protocol):
    """Protocol for publishing booking lifecycle events."""

    def publish(self, event_name: str, payload: Mapping[str, Any]) -> None:
        """Deliver ``payload`` for ``event_name``. Must not raise."""


class NullPublisher:
    """Publisher that drops every event."""

    def publish(self, event_name, payload):
        logger.debug("Dropping event %s", event_name)


class EventDispatcher:
    """In-process fan-out to registered subscribers."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}

    def subscribe(self, event_name: str, subscriber: Subscriber) -> None:
        self._subscribers.setdefault(event_name, []).append(subscriber)

    def publish(self, event_name: str, payload: Mapping[str, Any]) -> None:
        for subscriber in self._subscribers.get(event_name, []):
            try:
                subscriber(event_name, payload)
            except Exception as exc:  # subscriber faults must not reach the caller
                logger.warning(
                    "Subscriber %r failed for %s: %s",
                    getattr(subscriber, "__name__", subscriber),
                    event_name,
                    exc,
                )
