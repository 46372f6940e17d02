"""
ORM mappings for the booking store.
"""

import pendulum
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from .database import Base, UTCDateTime


def _utcnow():
    return pendulum.now("UTC")


class BookingStatusRecord(Base):
    __tablename__ = "service_request_statuses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False, unique=True)
    is_final = Column(Boolean, nullable=False, default=False)
    is_default = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<BookingStatusRecord(name='{self.name}', is_final={self.is_final})>"


class BookingRecord(Base):
    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, index=True)
    request_number = Column(String(20), nullable=False, unique=True)
    owner_id = Column(String(64), nullable=False, index=True)
    client_name = Column(String(255), nullable=True)
    resource_id = Column(String(64), nullable=True)
    title = Column(String(255), nullable=False, default="Service Request")
    description = Column(Text, nullable=False, default="")
    priority = Column(String(20), nullable=False, default="Medium")
    urgency = Column(String(20), nullable=False, default="Normal")
    service_type = Column(String(100), nullable=True)
    status_id = Column(Integer, ForeignKey("service_request_statuses.id"), nullable=False)

    starts_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    # Derived from starts_at + duration_minutes, kept for range queries.
    ends_at = Column(UTCDateTime, nullable=False)

    soft_deleted = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    late_cancellation = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    status = relationship(BookingStatusRecord, lazy="joined")

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_service_requests_duration_positive"),
        CheckConstraint("ends_at > starts_at", name="ck_service_requests_window_order"),
        Index("ix_service_requests_window", "starts_at", "ends_at"),
    )

    def __repr__(self):
        return (
            f"<BookingRecord(request_number='{self.request_number}', "
            f"owner_id='{self.owner_id}', starts_at={self.starts_at})>"
        )


class RateTierRecord(Base):
    __tablename__ = "service_hour_rate_tiers"

    id = Column(Integer, primary_key=True, index=True)
    tier_name = Column(String(50), nullable=False)
    tier_level = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)
    time_start = Column(Time, nullable=False)
    time_end = Column(Time, nullable=False)
    rate_multiplier = Column(Float, nullable=False, default=1.0)
    color_code = Column(String(7), nullable=False, default="#28a745")
    description = Column(Text, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_rate_tiers_day_of_week"),
        CheckConstraint("time_start < time_end", name="ck_rate_tiers_time_order"),
        CheckConstraint("rate_multiplier > 0", name="ck_rate_tiers_multiplier_positive"),
    )


class SystemSetting(Base):
    __tablename__ = "system_settings"

    setting_key = Column(String(100), primary_key=True)
    setting_value = Column(Text, nullable=True)
    description = Column(Text, nullable=True)


class ServiceLocationRecord(Base):
    __tablename__ = "service_locations"

    id = Column(String(64), primary_key=True)
    location_name = Column(String(255), nullable=False)
    location_type = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    soft_deleted = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<ServiceLocationRecord(id='{self.id}', location_name='{self.location_name}')>"
