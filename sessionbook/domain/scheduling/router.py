"""Scheduling router - FastAPI endpoints for slot listing and schedule management"""

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_provider
from ...database import get_db
from ...models import Provider
from .schemas import ScheduleResponse, ScheduleUpdate, SlotsResponse
from .service import SchedulingService

logger = logging.getLogger(__name__)

public_router = APIRouter(prefix="/public/providers", tags=["Public Scheduling"])
router = APIRouter(prefix="/providers/me", tags=["Schedule"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


def _schedule_response(service: SchedulingService, provider: Provider) -> ScheduleResponse:
    schedule, settings = service.get_schedule(provider)
    return ScheduleResponse(
        days=schedule.days,
        timezone=settings.timezone,
        sessionDuration=settings.session_duration,
        breakBetweenSessions=settings.break_minutes,
        sessionPrice=settings.session_price,
    )


@public_router.get("/{slug}/slots", response_model=SlotsResponse)
async def list_slots(
    slug: str,
    day: date = Query(..., alias="date"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Public endpoint: bookable start times for a provider-local date"""
    return SlotsResponse(**service.list_available_slots(slug, day))


@router.get("/schedule", response_model=ScheduleResponse)
async def get_schedule(
    current_provider: Provider = Depends(get_current_provider),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Current weekly schedule, normalized, with effective session settings"""
    return _schedule_response(service, current_provider)


@router.put("/schedule", response_model=ScheduleResponse)
async def update_schedule(
    data: ScheduleUpdate,
    current_provider: Provider = Depends(get_current_provider),
    service: SchedulingService = Depends(get_scheduling_service),
):
    provider = service.update_schedule(current_provider, data)
    return _schedule_response(service, provider)
