"""
FastAPI Application Entry Point.

This is the main application file for the Parcel Tracker Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from parcel_tracker.app.core.config import settings
from parcel_tracker.app.api.v1.router import router as api_v1_router
from parcel_tracker.app.core.dependencies import build_polling_engine
from parcel_tracker.app.core.observability import ObservabilityMiddleware, configure_logging
from parcel_tracker.app.core.redis_client import close_redis, ping_redis
from parcel_tracker.app.db.session import engine, Base
from parcel_tracker.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from parcel_tracker.app.models.tracking import Tracking
from parcel_tracker.app.models.tracking_history import TrackingHistory
from parcel_tracker.app.models.notification import Notification

logger = logging.getLogger("parcel_tracker")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Builds the polling engine and resumes polling of undelivered parcels.
    3. Cancels all polling tasks on shutdown.
    """
    configure_logging()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if not await ping_redis():
        logger.warning("Redis unreachable at startup, serving tracking reads from the database")

    polling_engine = build_polling_engine()
    app.state.polling_engine = polling_engine
    await polling_engine.resume_active()
    logger.info("%s started", settings.app_name)
    yield
    await polling_engine.shutdown()
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Tracks a parcel, polls its carrier status and records every change",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Parcel Tracker API",
        "docs": "/docs",
        "health": "/health",
    }
