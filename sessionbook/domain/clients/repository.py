"""Client repository - Database operations for clients"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Booking, BookingStatus, Client


class ClientRepository:
    """Repository for client database operations. Methods flush, callers commit."""

    @staticmethod
    def get_clients(db: Session, provider_id: int) -> list[Client]:
        """Get all clients for a provider"""
        return (
            db.query(Client)
            .filter(Client.provider_id == provider_id)
            .order_by(Client.joined_at.desc())
            .all()
        )

    @staticmethod
    def get_client_by_id(db: Session, client_id: int, provider_id: int) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.provider_id == provider_id)
            .first()
        )

    @staticmethod
    def get_client_by_email(db: Session, provider_id: int, email: str) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.provider_id == provider_id, Client.email == email.strip().lower())
            .first()
        )

    @staticmethod
    def create_client(db: Session, provider_id: int, **client_data) -> Client:
        """Insert a client. Raises IntegrityError on a duplicate (provider, email)."""
        client = Client(provider_id=provider_id, **client_data)
        db.add(client)
        db.flush()
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        for key, value in updates.items():
            setattr(client, key, value)
        db.flush()
        return client

    @staticmethod
    def increment_completed_sessions(
        db: Session, client_id: int, count: int, last_session_date: datetime
    ) -> int:
        """Add `count` completed sessions in the database, not in Python, so concurrent updates compose"""
        return (
            db.query(Client)
            .filter(Client.id == client_id)
            .update(
                {
                    Client.completed_sessions: Client.completed_sessions + count,
                    Client.last_session_date: last_session_date,
                },
                synchronize_session=False,
            )
        )

    @staticmethod
    def decrement_completed_sessions(db: Session, client_id: int) -> int:
        return (
            db.query(Client)
            .filter(Client.id == client_id)
            .update(
                {Client.completed_sessions: Client.completed_sessions - 1},
                synchronize_session=False,
            )
        )

    @staticmethod
    def count_completed_bookings(db: Session, client_id: int) -> int:
        return (
            db.query(func.count(Booking.id))
            .filter(Booking.client_id == client_id, Booking.status == BookingStatus.COMPLETED)
            .scalar()
        )
