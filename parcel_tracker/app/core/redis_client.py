"""
Redis client initialization and connection management.

The Redis instance backs the advisory tracking cache only; the database
stays the source of truth, so every helper here degrades quietly.
"""

import logging
import redis.asyncio as redis
from parcel_tracker.app.core.config import settings

logger = logging.getLogger("parcel_tracker.redis")

# Create async Redis client (connections are opened lazily on first command)
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return bool(await redis_client.ping())
    except Exception as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    """Close the shared client on application shutdown."""
    try:
        await redis_client.aclose()
    except Exception as exc:
        logger.warning("Redis close failed: %s", exc)
