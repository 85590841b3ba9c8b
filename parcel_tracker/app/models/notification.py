"""
Notification Database Model.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.sql import func
from parcel_tracker.app.db.session import Base


class Notification(Base):
    """
    In-App Notification.

    One row per detected status change on a tracking ID with notifications
    enabled. ``tracking_id`` doubles as the coalescing tag for clients that
    only show the latest alert per parcel; it is not a foreign key, so
    notifications outlive a stopped tracking.
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Tag
    tracking_id = Column(String(13), nullable=False, index=True)

    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(255), nullable=False)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, tracking_id='{self.tracking_id}', status='{self.status}')>"
