"""
Tracking API Endpoints.

Start, inspect, check and stop tracking of a single parcel.
"""

from fastapi import APIRouter, Depends, status, Path

from parcel_tracker.app.core.dependencies import get_polling_engine
from parcel_tracker.app.domain.tracking.polling_engine import PollingEngine
from parcel_tracker.app.schemas.tracking import (
    TrackingCreate,
    TrackingSummary,
    TrackingResponse,
    HistoryEntryResponse,
    CheckResponse,
    MessageResponse,
)

router = APIRouter(prefix="/tracking", tags=["Tracking"])


@router.post("", response_model=TrackingSummary, status_code=status.HTTP_201_CREATED)
async def add_tracking(
    tracking_data: TrackingCreate,
    engine: PollingEngine = Depends(get_polling_engine)
):
    """
    Start tracking a parcel.

    Validates:
    - Tracking ID matches the carrier format (400)
    - Tracking ID is not already tracked (409)
    """
    record = await engine.add(tracking_data.tracking_id, tracking_data.notifications_enabled)
    return TrackingSummary(
        tracking_id=record.tracking_id,
        status=record.last_status,
        delivered=record.delivered,
        notifications_enabled=record.notifications_enabled,
    )


@router.get("/{tracking_id}", response_model=TrackingResponse)
async def get_tracking(
    tracking_id: str = Path(..., description="Carrier tracking ID"),
    engine: PollingEngine = Depends(get_polling_engine)
):
    """Get the tracking record with its full history (oldest first)."""
    record = await engine.get(tracking_id)
    return TrackingResponse(
        tracking_id=record.tracking_id,
        state=record.state,
        notifications_enabled=record.notifications_enabled,
        started_at=record.started_at,
        last_checked_at=record.last_checked_at,
        last_status=record.last_status,
        delivered=record.delivered,
        next_check_at=engine.next_check_at(record),
        history=[HistoryEntryResponse.model_validate(entry) for entry in record.history],
    )


@router.post("/{tracking_id}/check", response_model=CheckResponse)
async def check_tracking(
    tracking_id: str = Path(..., description="Carrier tracking ID"),
    engine: PollingEngine = Depends(get_polling_engine)
):
    """
    Check for a status update now.

    Returns without querying the carrier if the parcel is already delivered.
    """
    result = await engine.check(tracking_id)
    return CheckResponse(
        tracking_id=result.tracking_id,
        status=result.status,
        delivered=result.delivered,
        status_changed=result.status_changed,
        notifications_enabled=result.notifications_enabled,
        message="Package already delivered" if result.delivered and not result.status_changed else None,
    )


@router.delete("/{tracking_id}", response_model=MessageResponse)
async def delete_tracking(
    tracking_id: str = Path(..., description="Carrier tracking ID"),
    engine: PollingEngine = Depends(get_polling_engine)
):
    """Stop tracking and delete the record with its history."""
    await engine.stop(tracking_id)
    return MessageResponse(message="Tracking deleted successfully")
