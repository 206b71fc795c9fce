"""Booking router - FastAPI endpoints for public booking and provider booking lists"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_provider
from ...database import get_db
from ...models import Booking, Provider
from ...services.outbox import EventDispatcher, get_event_dispatcher
from ...timeutils import ensure_utc, format_hhmm, instant_to_local, naive_local_to_instant
from .schemas import BookingCreate, BookingResponse
from .service import BookingService

logger = logging.getLogger(__name__)

public_router = APIRouter(prefix="/public/providers", tags=["Public Booking"])
router = APIRouter(prefix="/providers/me/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def to_booking_response(booking: Booking, tz_name: Optional[str]) -> BookingResponse:
    start = ensure_utc(booking.start_at)
    local_start = instant_to_local(start, tz_name)
    return BookingResponse(
        id=booking.id,
        clientId=booking.client_id,
        clientName=booking.client_name,
        clientEmail=booking.client_email,
        clientPhone=booking.client_phone,
        startInstant=start,
        endInstant=start + timedelta(minutes=booking.duration),
        localStart=f"{local_start.date().isoformat()} {format_hhmm(local_start.time())}",
        timezone=local_start.tzinfo.key,
        duration=booking.duration,
        status=booking.status,
        price=booking.price,
        notes=booking.notes,
        externalEventId=booking.external_event_id,
        createdAt=booking.created_at,
    )


@public_router.post("/{slug}/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(
    slug: str,
    data: BookingCreate,
    background_tasks: BackgroundTasks,
    service: BookingService = Depends(get_booking_service),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
):
    """Public endpoint: book a session with a provider"""
    booking, client, event_ids = service.create_booking(slug, data)
    # After commit and after the response; failures only delay side effects
    background_tasks.add_task(dispatcher.dispatch, event_ids)
    return to_booking_response(booking, booking.provider.timezone)


@router.post("", response_model=BookingResponse, status_code=201)
async def create_provider_booking(
    data: BookingCreate,
    background_tasks: BackgroundTasks,
    current_provider: Provider = Depends(get_current_provider),
    service: BookingService = Depends(get_booking_service),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
):
    """Provider books a session for a client; past sessions may be recorded after the fact"""
    booking, client, event_ids = service.create_booking(current_provider.slug, data, allow_past=True)
    background_tasks.add_task(dispatcher.dispatch, event_ids)
    return to_booking_response(booking, current_provider.timezone)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    status: Optional[str] = None,
    from_: Optional[datetime] = Query(default=None, alias="from"),
    to: Optional[datetime] = None,
    current_provider: Provider = Depends(get_current_provider),
    service: BookingService = Depends(get_booking_service),
):
    """Provider's bookings, optionally filtered by status and start range"""
    start = naive_local_to_instant(from_, current_provider.timezone) if from_ else None
    end = naive_local_to_instant(to, current_provider.timezone) if to else None
    bookings = service.list_bookings(current_provider, status, start, end)
    return [to_booking_response(b, current_provider.timezone) for b in bookings]
