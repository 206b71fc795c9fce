from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

from .database import Base


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back timezone-aware UTC datetimes"""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingStatus:
    BOOKED = "booked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (BOOKED, COMPLETED, CANCELLED)


class OutboxStatus:
    PENDING = "pending"
    DISPATCHED = "dispatched"
    FAILED = "failed"


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), unique=True, index=True, nullable=False)  # Public booking URL slug
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. Asia/Jerusalem
    # Weekly schedule - canonical or one of the legacy shapes, see domain/scheduling/schedule.py
    working_hours = Column(JSON, nullable=True)
    session_duration = Column(Integer, nullable=True)  # minutes
    break_between_sessions = Column(Integer, nullable=True)  # minutes
    session_price = Column(Integer, nullable=True)
    api_token_hash = Column(String(64), unique=True, index=True, nullable=True)  # sha256 hex
    # Bumped by every booking transaction - the per-provider serialization point
    booking_sequence = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    clients = relationship("Client", back_populates="provider")
    bookings = relationship("Booking", back_populates="provider")
    calendar_integration = relationship(
        "CalendarIntegration", back_populates="provider", uselist=False
    )


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (UniqueConstraint("provider_id", "email", name="uq_clients_provider_email"),)

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False)  # stored lowercase
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    session_price = Column(Integer, nullable=True)
    joined_at = Column(UTCDateTime, default=_utcnow)
    last_session_date = Column(UTCDateTime, nullable=True)
    # Denormalized - must equal the number of this client's completed bookings
    completed_sessions = Column(Integer, default=0, nullable=False)

    provider = relationship("Provider", back_populates="clients")
    bookings = relationship("Booking", back_populates="client")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_provider_status_start", "provider_id", "status", "start_at"),)

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    # Requester snapshot at creation time - not updated when the client profile changes
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    start_at = Column(UTCDateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    status = Column(String(20), default=BookingStatus.BOOKED, nullable=False)
    price = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    external_event_id = Column(String(255), nullable=True)  # Google Calendar event id
    created_at = Column(UTCDateTime, default=_utcnow)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    provider = relationship("Provider", back_populates="bookings")
    client = relationship("Client", back_populates="bookings")


class OutboxEvent(Base):
    """Side effects recorded in the same transaction as the booking change"""

    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False)  # booking.created, booking.cancelled
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False)
    # No FK: the booking row may be deleted by the cancellation policy
    booking_id = Column(Integer, nullable=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), default=OutboxStatus.PENDING, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, default=_utcnow)
    processed_at = Column(UTCDateTime, nullable=True)


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=False, unique=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(UTCDateTime, nullable=False)

    google_calendar_id = Column(String(500), nullable=True)
    auto_sync_enabled = Column(Boolean, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    provider = relationship("Provider", back_populates="calendar_integration")


class AutoCompletionRun(Base):
    """Last auto-completion run per scope; provider_id NULL means all providers"""

    __tablename__ = "auto_completion_runs"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.id"), nullable=True, unique=True)
    last_run_at = Column(UTCDateTime, nullable=False)
    completed_count = Column(Integer, default=0, nullable=False)
