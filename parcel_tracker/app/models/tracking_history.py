"""
Tracking History database model.

Append-only log of status observations per tracking ID.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from parcel_tracker.app.db.session import Base


class TrackingHistory(Base):
    """
    Tracking History model.

    Rows are inserted once and never updated; they are removed only
    together with their parent tracking row.
    """
    __tablename__ = "tracking_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    tracking_id = Column(
        String(13),
        ForeignKey("tracking.tracking_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(String(255), nullable=False)
    timestamp = Column(DateTime, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    tracking = relationship("Tracking", back_populates="history")

    def __repr__(self):
        return f"<TrackingHistory(tracking_id='{self.tracking_id}', status='{self.status}')>"
