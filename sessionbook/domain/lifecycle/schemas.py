"""Lifecycle schemas - Pydantic models for completion and cancellation"""

from typing import Optional

from pydantic import BaseModel

from ..bookings.schemas import BookingResponse


class AutoCompleteRequest(BaseModel):
    force: bool = False
    previewOnly: bool = False


class AutoCompleteResponse(BaseModel):
    """`completed` after a run, `pendingCompletion` for a preview"""

    completed: Optional[int] = None
    pendingCompletion: Optional[int] = None
    bookings: list[BookingResponse]
    skipped: bool = False


class CancellationResponse(BaseModel):
    id: int
    previousStatus: str
    status: str
    deleted: bool
