"""Scheduling schemas - Pydantic models for slot listing and schedule management"""

import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...config import MAX_SESSION_MINUTES
from ...shared.validators import validate_timezone
from .schedule import DAYS, Window


class SlotsResponse(BaseModel):
    """Public slot listing for one provider-local date"""

    providerName: str
    date: datetime.date
    timezone: str
    sessionDuration: int
    slots: list[str]


class ScheduleUpdate(BaseModel):
    """Schema for replacing a provider's weekly schedule and session settings"""

    days: dict[str, list[Window]]
    timezone: Optional[str] = None
    sessionDuration: Optional[int] = Field(default=None, gt=0, le=MAX_SESSION_MINUTES)
    breakBetweenSessions: Optional[int] = Field(default=None, ge=0, le=240)
    sessionPrice: Optional[int] = Field(default=None, ge=0)

    @field_validator("days")
    @classmethod
    def validate_days(cls, v):
        unknown = [d for d in v if d.lower() not in DAYS]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_tz(cls, v):
        return validate_timezone(v)


class ScheduleResponse(BaseModel):
    days: dict[str, list[Window]]
    timezone: str
    sessionDuration: int
    breakBetweenSessions: int
    sessionPrice: int
