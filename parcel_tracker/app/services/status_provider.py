"""
Status Provider.

Capability interface for carrier status lookups plus the mock used until a
real carrier API is wired in. Whatever the implementation, a provider must
never report an earlier stage after a later one, and ``delivered`` is
terminal.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Tuple

logger = logging.getLogger("parcel_tracker.provider")


@dataclass(frozen=True)
class StatusResult:
    status: str
    delivered: bool


class StatusProvider(ABC):
    """Single-method lookup interface used by the polling engine."""

    @abstractmethod
    async def fetch_status(self, tracking_id: str, started_at: datetime, now: datetime) -> StatusResult:
        """Return the carrier status of ``tracking_id`` as of ``now``."""


# (status, delivered) per elapsed-time bucket; the last bucket is open-ended
MOCK_STAGES: List[Tuple[str, bool]] = [
    ("Item received by Royal Mail", False),
    ("In transit to delivery depot", False),
    ("At local delivery office", False),
    ("Out for delivery", False),
    ("Delivered and signed for", True),
]


class MockStatusProvider(StatusProvider):
    """
    Deterministic stand-in for the Royal Mail tracking API.

    The status is a step function of ``now - started_at``: each stage lasts
    ``step_seconds`` and anything past the fourth step is delivered.

    Args:
        step_seconds: Width of one simulated time unit
        simulated_delay_seconds: Artificial latency per lookup
    """

    def __init__(self, step_seconds: float = 60, simulated_delay_seconds: float = 0):
        if step_seconds <= 0:
            raise ValueError("step_seconds must be positive")
        self.step_seconds = step_seconds
        self.simulated_delay_seconds = simulated_delay_seconds

    def stage_for(self, elapsed_seconds: float) -> StatusResult:
        bucket = int(max(elapsed_seconds, 0) // self.step_seconds)
        status, delivered = MOCK_STAGES[min(bucket, len(MOCK_STAGES) - 1)]
        return StatusResult(status=status, delivered=delivered)

    async def fetch_status(self, tracking_id: str, started_at: datetime, now: datetime) -> StatusResult:
        if self.simulated_delay_seconds:
            await asyncio.sleep(self.simulated_delay_seconds)

        result = self.stage_for((now - started_at).total_seconds())
        logger.debug("Mock status for %s: %s", tracking_id, result.status)
        return result
