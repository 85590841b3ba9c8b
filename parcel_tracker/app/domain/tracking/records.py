"""
Tracking domain records.

Plain immutable views of persisted tracking state, detached from the ORM
session so they can cross task boundaries and be cached.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from parcel_tracker.app.models.tracking_enums import TrackingState


@dataclass(frozen=True)
class HistoryEntry:
    status: str
    timestamp: datetime


@dataclass(frozen=True)
class TrackingRecord:
    """Snapshot of one tracking row plus its ordered history."""
    tracking_id: str
    notifications_enabled: bool
    started_at: datetime
    last_checked_at: Optional[datetime]
    last_status: Optional[str]
    delivered: bool
    history: Tuple[HistoryEntry, ...] = field(default_factory=tuple)

    @property
    def state(self) -> TrackingState:
        return TrackingState.DELIVERED if self.delivered else TrackingState.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracking_id": self.tracking_id,
            "notifications_enabled": self.notifications_enabled,
            "started_at": self.started_at.isoformat(),
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
            "last_status": self.last_status,
            "delivered": self.delivered,
            "history": [
                {"status": entry.status, "timestamp": entry.timestamp.isoformat()}
                for entry in self.history
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TrackingRecord":
        last_checked = data.get("last_checked_at")
        return cls(
            tracking_id=data["tracking_id"],
            notifications_enabled=data["notifications_enabled"],
            started_at=datetime.fromisoformat(data["started_at"]),
            last_checked_at=datetime.fromisoformat(last_checked) if last_checked else None,
            last_status=data.get("last_status"),
            delivered=data["delivered"],
            history=tuple(
                HistoryEntry(status=item["status"], timestamp=datetime.fromisoformat(item["timestamp"]))
                for item in data.get("history", [])
            ),
        )


@dataclass(frozen=True)
class CheckResult:
    """Outcome of a single Check against the status provider."""
    tracking_id: str
    status: Optional[str]
    delivered: bool
    status_changed: bool
    notifications_enabled: bool
