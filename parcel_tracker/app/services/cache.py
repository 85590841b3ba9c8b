"""
Tracking Cache.

Advisory read-through cache of tracking records in Redis. The database is
the source of truth: entries are refreshed after every mutation and any
Redis failure simply falls through to the store.
"""

import json
import logging
from typing import Optional

from parcel_tracker.app.domain.tracking.records import TrackingRecord

logger = logging.getLogger("parcel_tracker.cache")

KEY_PREFIX = "tracking:"


class TrackingCache:

    def __init__(self, redis_client, ttl_seconds: int = 300):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(tracking_id: str) -> str:
        return f"{KEY_PREFIX}{tracking_id}"

    async def get(self, tracking_id: str) -> Optional[TrackingRecord]:
        try:
            raw = await self._redis.get(self.key(tracking_id))
            if not raw:
                return None
            return TrackingRecord.from_dict(json.loads(raw))
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", tracking_id, exc)
            return None

    async def set(self, record: TrackingRecord) -> None:
        try:
            await self._redis.set(
                self.key(record.tracking_id),
                json.dumps(record.to_dict()),
                ex=self.ttl_seconds,
            )
        except Exception as exc:
            logger.warning("Cache write failed for %s: %s", record.tracking_id, exc)

    async def invalidate(self, tracking_id: str) -> None:
        try:
            await self._redis.delete(self.key(tracking_id))
        except Exception as exc:
            logger.warning("Cache invalidation failed for %s: %s", tracking_id, exc)
