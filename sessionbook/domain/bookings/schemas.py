"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...config import MAX_SESSION_MINUTES
from ...shared.validators import normalize_phone, validate_email


class BookingCreate(BaseModel):
    """Public booking request. A naive startInstant is provider-local time."""

    clientName: str = Field(..., min_length=1, max_length=255)
    clientEmail: str
    clientPhone: Optional[str] = None
    startInstant: datetime
    duration: Optional[int] = Field(default=None, ge=1, le=MAX_SESSION_MINUTES)
    price: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("clientName")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Client name is required")
        return v.strip()

    @field_validator("clientEmail")
    @classmethod
    def validate_client_email(cls, v):
        if not v or not v.strip():
            raise ValueError("Client email is required")
        return validate_email(v)

    @field_validator("clientPhone")
    @classmethod
    def validate_client_phone(cls, v):
        return normalize_phone(v)


class BookingResponse(BaseModel):
    """Booking summary returned to both the requester and the provider"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    clientId: Optional[int] = None
    clientName: str
    clientEmail: str
    clientPhone: Optional[str] = None
    startInstant: datetime
    endInstant: datetime
    localStart: str
    timezone: str
    duration: int
    status: str
    price: Optional[int] = None
    notes: Optional[str] = None
    externalEventId: Optional[str] = None
    createdAt: Optional[datetime] = None
