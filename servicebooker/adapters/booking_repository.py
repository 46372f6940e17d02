"""
Booking store access.

Reads fetch fresh rows on every call; nothing is cached across requests.
Writes go through ``BookingRepository.writer()``, which opens a single
transaction holding the store's writer lock so that conflict evaluation
and insert happen atomically.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from pendulum import DateTime
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..domain.exceptions import ConfigurationUnavailable, StoreError
from ..domain.models import Booking, BookingWindow, RateTierBand, Resource, TimeRange
from .tables import BookingRecord, BookingStatusRecord, RateTierRecord, ServiceLocationRecord

logger = logging.getLogger(__name__)

REQUEST_NUMBER_PREFIX = "SR"
REQUEST_SEQUENCE_WIDTH = 5

# Fixed key for pg_advisory_xact_lock; every booking writer contends on it.
BOOKING_WRITE_LOCK_KEY = 7_340_001

CANCELLED_STATUS = "Cancelled"

DEFAULT_STATUSES = (
    # name, is_final, is_default
    ("Submitted", False, True),
    ("Scheduled", False, False),
    ("In Progress", False, False),
    ("On Hold", False, False),
    ("Completed", True, False),
    ("Cancelled", True, False),
    ("Rejected", True, False),
)


def format_request_number(year: int, sequence: int) -> str:
    return f"{REQUEST_NUMBER_PREFIX}-{year}-{sequence:0{REQUEST_SEQUENCE_WIDTH}d}"


def record_to_booking(record: BookingRecord) -> Booking:
    return Booking(
        id=record.id,
        request_number=record.request_number,
        owner_id=record.owner_id,
        client_name=record.client_name,
        window=BookingWindow(start=record.starts_at, duration_minutes=record.duration_minutes),
        status=record.status.name,
        is_final=record.status.is_final,
        resource_id=record.resource_id,
        title=record.title,
        description=record.description,
        priority=record.priority,
        urgency=record.urgency,
        service_type=record.service_type,
        soft_deleted=record.soft_deleted,
        created_at=record.created_at,
    )


def record_to_band(record: RateTierRecord) -> RateTierBand:
    return RateTierBand(
        tier_name=record.tier_name,
        tier_level=record.tier_level,
        day_of_week=record.day_of_week,
        time_start=record.time_start,
        time_end=record.time_end,
        rate_multiplier=record.rate_multiplier,
        color_code=record.color_code,
        description=record.description or "",
    )


def record_to_resource(record: ServiceLocationRecord) -> Resource:
    return Resource(
        id=record.id,
        name=record.location_name,
        resource_type=record.location_type or "Service Location",
        description=record.notes,
        is_available=record.is_active,
    )


def _blocking_query(time_range: TimeRange):
    """Non-final, non-deleted bookings whose window intersects ``time_range``."""
    return (
        select(BookingRecord)
        .join(BookingRecord.status)
        .where(
            BookingRecord.soft_deleted.is_(False),
            BookingStatusRecord.is_final.is_(False),
            BookingRecord.starts_at < time_range.end,
            BookingRecord.ends_at > time_range.start,
        )
        .order_by(BookingRecord.starts_at)
    )


def _open_count_query(owner_id: str):
    return (
        select(func.count(BookingRecord.id))
        .select_from(BookingRecord)
        .join(BookingRecord.status)
        .where(
            BookingRecord.owner_id == owner_id,
            BookingRecord.soft_deleted.is_(False),
            BookingStatusRecord.is_final.is_(False),
        )
    )


def _active_resource_query(resource_id: str):
    return select(ServiceLocationRecord.id).where(
        ServiceLocationRecord.id == resource_id,
        ServiceLocationRecord.is_active.is_(True),
        ServiceLocationRecord.soft_deleted.is_(False),
    )


class BookingWriter:
    """
    Operations available inside the locked write transaction.

    Every read here sees all bookings committed before the lock was taken.
    """

    def __init__(self, session: Session):
        self.session = session

    def fetch_blocking(self, time_range: TimeRange) -> List[Booking]:
        records = self.session.scalars(_blocking_query(time_range)).unique().all()
        return [record_to_booking(r) for r in records]

    def count_open_for_owner(self, owner_id: str) -> int:
        return self.session.scalar(_open_count_query(owner_id)) or 0

    def default_status(self) -> BookingStatusRecord:
        status = self.session.scalars(
            select(BookingStatusRecord).where(BookingStatusRecord.is_default.is_(True))
        ).first()
        if status is None:
            raise ConfigurationUnavailable(
                "No default service request status configured. Run 'init-db' to seed statuses."
            )
        return status

    def status_by_name(self, name: str) -> BookingStatusRecord:
        status = self.session.scalars(
            select(BookingStatusRecord).where(BookingStatusRecord.name == name)
        ).first()
        if status is None:
            raise ConfigurationUnavailable(f"Service request status '{name}' is not configured")
        return status

    def next_request_number(self, year: int) -> str:
        """Next SR-YYYY-NNNNN identifier for ``year``. Caller must hold the writer lock."""
        prefix = f"{REQUEST_NUMBER_PREFIX}-{year}-"
        latest = self.session.scalar(
            select(BookingRecord.request_number)
            .where(BookingRecord.request_number.like(f"{prefix}%"))
            # Longer suffixes are larger numbers; compare length before text.
            .order_by(
                func.length(BookingRecord.request_number).desc(),
                BookingRecord.request_number.desc(),
            )
            .limit(1)
        )
        sequence = int(latest[len(prefix):]) + 1 if latest else 1
        return format_request_number(year, sequence)

    def insert(self, booking: Booking, status: BookingStatusRecord) -> Booking:
        record = BookingRecord(
            request_number=booking.request_number,
            owner_id=booking.owner_id,
            client_name=booking.client_name,
            resource_id=booking.resource_id,
            title=booking.title,
            description=booking.description,
            priority=booking.priority,
            urgency=booking.urgency,
            service_type=booking.service_type,
            status=status,
            starts_at=booking.window.start,
            duration_minutes=booking.window.duration_minutes,
            ends_at=booking.window.end,
        )
        self.session.add(record)
        self.session.flush()
        return record_to_booking(record)

    def get_record(self, request_number: str) -> Optional[BookingRecord]:
        return self.session.scalars(
            select(BookingRecord).where(
                BookingRecord.request_number == request_number,
                BookingRecord.soft_deleted.is_(False),
            )
        ).first()

    def mark_cancelled(
        self,
        record: BookingRecord,
        cancelled_at: DateTime,
        reason: Optional[str],
        late: bool,
    ) -> Booking:
        record.status = self.status_by_name(CANCELLED_STATUS)
        record.cancelled_at = cancelled_at
        record.cancellation_reason = reason
        record.late_cancellation = late
        self.session.flush()
        return record_to_booking(record)


class BookingRepository:
    """
    Read path over the booking store, plus the factory for locked writers.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Booking store error: %s", exc)
            raise StoreError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def writer(self) -> Iterator[BookingWriter]:
        """
        Open the serialized write transaction.

        SQLite takes its RESERVED lock through ``BEGIN IMMEDIATE`` when the
        transaction begins; PostgreSQL waits on a transaction-scoped advisory lock.
        """
        with self.session_scope() as session:
            connection = session.connection()
            if connection.dialect.name == "postgresql":
                session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"),
                    {"key": BOOKING_WRITE_LOCK_KEY},
                )
            yield BookingWriter(session)

    def fetch_blocking(self, time_range: TimeRange) -> List[Booking]:
        """
        Bookings that block the calendar anywhere inside ``time_range``.

        Only the actual appointment windows are returned; buffers are applied
        by the conflict evaluator.
        """
        with self.session_scope() as session:
            records = session.scalars(_blocking_query(time_range)).unique().all()
            return [record_to_booking(r) for r in records]

    def get(self, request_number: str) -> Optional[Booking]:
        with self.session_scope() as session:
            record = BookingWriter(session).get_record(request_number)
            return record_to_booking(record) if record else None

    def count_open_for_owner(self, owner_id: str) -> int:
        with self.session_scope() as session:
            return session.scalar(_open_count_query(owner_id)) or 0

    def count_all_for_owner(self, owner_id: str) -> int:
        """All non-deleted bookings ever created by ``owner_id``, final or not."""
        with self.session_scope() as session:
            return session.scalar(
                select(func.count(BookingRecord.id)).where(
                    BookingRecord.owner_id == owner_id,
                    BookingRecord.soft_deleted.is_(False),
                )
            ) or 0

    def load_rate_tiers(self) -> List[RateTierBand]:
        with self.session_scope() as session:
            records = session.scalars(
                select(RateTierRecord)
                .where(RateTierRecord.is_active.is_(True))
                .order_by(RateTierRecord.day_of_week, RateTierRecord.time_start)
            ).all()
            return [record_to_band(r) for r in records]

    def seed_statuses(self) -> int:
        """Insert any missing lifecycle statuses. Returns how many were added."""
        added = 0
        with self.session_scope() as session:
            existing = set(session.scalars(select(BookingStatusRecord.name)).all())
            for order, (name, is_final, is_default) in enumerate(DEFAULT_STATUSES):
                if name in existing:
                    continue
                session.add(
                    BookingStatusRecord(
                        name=name, is_final=is_final, is_default=is_default, sort_order=order
                    )
                )
                added += 1
        return added

    def replace_rate_tiers(self, bands: Sequence[RateTierBand]) -> int:
        """Deactivate current bands and store ``bands`` as the active set."""
        with self.session_scope() as session:
            for record in session.scalars(select(RateTierRecord)).all():
                record.is_active = False
            for band in bands:
                session.add(
                    RateTierRecord(
                        tier_name=band.tier_name,
                        tier_level=band.tier_level,
                        day_of_week=band.day_of_week,
                        time_start=band.time_start,
                        time_end=band.time_end,
                        rate_multiplier=band.rate_multiplier,
                        color_code=band.color_code,
                        description=band.description,
                        is_active=True,
                    )
                )
        return len(bands)

    def list_resources(self) -> List[Resource]:
        """Active service locations, ordered by name."""
        with self.session_scope() as session:
            records = session.scalars(
                select(ServiceLocationRecord)
                .where(
                    ServiceLocationRecord.is_active.is_(True),
                    ServiceLocationRecord.soft_deleted.is_(False),
                )
                .order_by(ServiceLocationRecord.location_name)
            ).all()
            return [record_to_resource(r) for r in records]

    def is_active_resource(self, resource_id: str) -> bool:
        with self.session_scope() as session:
            return session.scalar(_active_resource_query(resource_id)) is not None

    def upsert_resources(self, resources: Sequence[Resource]) -> int:
        """Insert or update service locations by id. Returns how many were written."""
        with self.session_scope() as session:
            for resource in resources:
                record = session.get(ServiceLocationRecord, resource.id)
                if record is None:
                    record = ServiceLocationRecord(id=resource.id)
                    session.add(record)
                record.location_name = resource.name
                record.location_type = resource.resource_type
                record.notes = resource.description
                record.is_active = resource.is_available
                record.soft_deleted = False
        return len(resources)
