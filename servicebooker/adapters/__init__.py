"""
Adapters layer - Booking store, settings sources and event publishing.
"""

from .booking_repository import BookingRepository, BookingWriter
from .database import create_db_engine, create_session_factory, init_db
from .events import EventDispatcher, NullPublisher
from .settings_provider import DatabaseSettingsProvider, StaticSettingsProvider

__all__ = [
    "BookingRepository",
    "BookingWriter",
    "DatabaseSettingsProvider",
    "EventDispatcher",
    "NullPublisher",
    "StaticSettingsProvider",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
