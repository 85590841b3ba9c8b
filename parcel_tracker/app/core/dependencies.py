"""
Application dependencies for FastAPI.

The polling engine is built once per application in the lifespan handler
and shared through ``app.state``.
"""

from fastapi import Request

from parcel_tracker.app.core.config import settings
from parcel_tracker.app.core.redis_client import redis_client
from parcel_tracker.app.core.reliability import CircuitBreaker
from parcel_tracker.app.db.session import AsyncSessionLocal
from parcel_tracker.app.domain.tracking.polling_engine import PollingEngine
from parcel_tracker.app.services.cache import TrackingCache
from parcel_tracker.app.services.notification_service import build_notifier
from parcel_tracker.app.services.status_provider import MockStatusProvider
from parcel_tracker.app.services.tracking_store import TrackingStore


def build_polling_engine(session_factory=AsyncSessionLocal, redis=redis_client) -> PollingEngine:
    """
    Wire the polling engine from settings.

    Args:
        session_factory: Session factory for store and in-app notifications
        redis: Redis client backing the tracking cache

    Returns:
        A configured, not yet resumed, PollingEngine
    """
    return PollingEngine(
        store=TrackingStore(session_factory),
        provider=MockStatusProvider(
            step_seconds=settings.provider_step_seconds,
            simulated_delay_seconds=settings.provider_simulated_delay_seconds,
        ),
        notifier=build_notifier(
            session_factory,
            webhook_url=settings.notification_webhook_url,
            webhook_timeout=settings.notification_webhook_timeout_seconds,
        ),
        cache=TrackingCache(redis, ttl_seconds=settings.cache_ttl_seconds),
        check_interval_seconds=settings.check_interval_seconds,
        provider_timeout_seconds=settings.provider_timeout_seconds,
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.provider_failure_threshold,
            reset_timeout=settings.provider_reset_timeout_seconds,
            name="status_provider",
        ),
        polling_enabled=settings.polling_enabled,
    )


async def get_polling_engine(request: Request) -> PollingEngine:
    """FastAPI dependency returning the application's polling engine."""
    return request.app.state.polling_engine
