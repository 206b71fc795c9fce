"""Lifecycle router - FastAPI endpoints for completing and cancelling bookings"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_provider
from ...database import get_db
from ...models import Provider
from ...services.outbox import EventDispatcher, get_event_dispatcher
from ..bookings.router import to_booking_response
from ..bookings.schemas import BookingResponse
from .schemas import AutoCompleteRequest, AutoCompleteResponse, CancellationResponse
from .service import LifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/providers/me", tags=["Booking Lifecycle"])


def get_lifecycle_service(db: Session = Depends(get_db)) -> LifecycleService:
    """Dependency injection for LifecycleService"""
    return LifecycleService(db)


def _auto_complete_response(result: dict, provider: Provider) -> AutoCompleteResponse:
    return AutoCompleteResponse(
        completed=result.get("completed"),
        pendingCompletion=result.get("pendingCompletion"),
        bookings=[to_booking_response(b, provider.timezone) for b in result["bookings"]],
        skipped=result["skipped"],
    )


@router.post("/bookings/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: int,
    current_provider: Provider = Depends(get_current_provider),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    """Mark a booked session as completed"""
    booking = service.complete_booking(booking_id, current_provider)
    return to_booking_response(booking, current_provider.timezone)


@router.delete("/bookings/{booking_id}", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    current_provider: Provider = Depends(get_current_provider),
    service: LifecycleService = Depends(get_lifecycle_service),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
):
    """Cancel a booking; the calendar event is removed after commit"""
    summary, event_ids = service.cancel_booking(booking_id, current_provider)
    background_tasks.add_task(dispatcher.dispatch, event_ids)
    return CancellationResponse(**summary)


@router.get("/auto-complete", response_model=AutoCompleteResponse)
async def preview_auto_complete(
    current_provider: Provider = Depends(get_current_provider),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    """Bookings that have ended but are still marked booked"""
    return _auto_complete_response(service.preview(provider_id=current_provider.id), current_provider)


@router.post("/auto-complete", response_model=AutoCompleteResponse)
async def run_auto_complete(
    data: Optional[AutoCompleteRequest] = None,
    current_provider: Provider = Depends(get_current_provider),
    service: LifecycleService = Depends(get_lifecycle_service),
):
    data = data or AutoCompleteRequest()
    if data.previewOnly:
        result = service.preview(provider_id=current_provider.id)
    else:
        result = service.auto_complete(provider_id=current_provider.id, force=data.force)
    return _auto_complete_response(result, current_provider)
