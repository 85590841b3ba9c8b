"""
Tracking database model.

One row per tracked parcel identifier.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from parcel_tracker.app.db.session import Base


class Tracking(Base):
    """
    Tracking model.

    Holds the current polling state for a single carrier tracking ID.
    ``last_status`` always mirrors the newest history row and
    ``delivered`` only ever flips from False to True.
    """
    __tablename__ = "tracking"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Carrier identifier (normalized, e.g. AB123456789GB)
    tracking_id = Column(String(13), unique=True, nullable=False, index=True)

    # Preferences
    notifications_enabled = Column(Boolean, default=False, nullable=False)

    # Polling state
    started_at = Column(DateTime, nullable=False)
    last_checked_at = Column(DateTime, nullable=True)
    last_status = Column(String(255), nullable=True)
    delivered = Column(Boolean, default=False, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    history = relationship(
        "TrackingHistory",
        back_populates="tracking",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TrackingHistory.id",
    )

    def __repr__(self):
        return f"<Tracking(tracking_id='{self.tracking_id}', status='{self.last_status}', delivered={self.delivered})>"
