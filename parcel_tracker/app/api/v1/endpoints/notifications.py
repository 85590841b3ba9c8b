"""
Notification API Endpoints.

In-app feed of status-change alerts.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from parcel_tracker.app.db.session import get_db
from parcel_tracker.app.services.notification_service import NotificationService
from parcel_tracker.app.services.validator import normalize_tracking_id
from parcel_tracker.app.schemas.notification import NotificationResponse

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    tracking_id: Optional[str] = Query(None),
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """List notifications, newest first."""
    return await NotificationService.list_notifications(
        db,
        tracking_id=normalize_tracking_id(tracking_id) if tracking_id else None,
        unread_only=unread_only,
        limit=limit,
    )


@router.patch("/read-all")
async def mark_all_notifications_read(
    tracking_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    """Mark all notifications as read."""
    count = await NotificationService.mark_all_read(
        db, normalize_tracking_id(tracking_id) if tracking_id else None
    )
    await db.commit()
    return {"status": "success", "count": count}


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int = Path(...),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    success = await NotificationService.mark_read(db, notification_id)
    if not success:
        raise HTTPException(status_code=404, detail="Notification not found")

    await db.commit()
    return {"status": "success"}
