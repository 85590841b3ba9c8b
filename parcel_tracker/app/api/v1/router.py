"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from parcel_tracker.app.api.v1.endpoints import tracking, notifications

router = APIRouter()

# Tracking lifecycle endpoints
router.include_router(tracking.router)

# In-app notification feed
router.include_router(notifications.router)
