"""
Tracking Pydantic schemas.

Defines request and response models for tracking management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from parcel_tracker.app.models.tracking_enums import TrackingState


class TrackingCreate(BaseModel):
    """Schema for starting to track a parcel."""
    tracking_id: str = Field(..., min_length=1, max_length=64, description="Carrier tracking ID, e.g. AB123456789GB")
    notifications_enabled: bool = Field(default=False, description="Notify on every status change")


class TrackingSummary(BaseModel):
    """Schema returned when tracking starts."""
    tracking_id: str
    status: str
    delivered: bool
    notifications_enabled: bool


class HistoryEntryResponse(BaseModel):
    status: str
    timestamp: datetime

    class Config:
        from_attributes = True


class TrackingResponse(BaseModel):
    """Schema for the full tracking record."""
    tracking_id: str
    state: TrackingState
    notifications_enabled: bool
    started_at: datetime
    last_checked_at: Optional[datetime]
    last_status: Optional[str]
    delivered: bool
    next_check_at: Optional[datetime]
    history: List[HistoryEntryResponse]


class CheckResponse(BaseModel):
    """Schema for the result of a single check."""
    tracking_id: str
    status: Optional[str]
    delivered: bool
    status_changed: bool
    notifications_enabled: bool
    message: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
