"""
Tracking Record Store.

Persists one tracking row per identifier plus its append-only history.
Every read and every mutation is serialized per identifier and each
mutation runs in its own transaction, so a reader never sees
``last_status`` without the matching history row.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcel_tracker.app.core.exceptions import (
    ResourceNotFoundError,
    StoreFailureError,
    TrackingConflictError,
)
from parcel_tracker.app.core.locks import KeyedLocks
from parcel_tracker.app.domain.tracking.records import HistoryEntry, TrackingRecord
from parcel_tracker.app.models.tracking import Tracking
from parcel_tracker.app.models.tracking_history import TrackingHistory

logger = logging.getLogger("parcel_tracker.store")


class TrackingStore:
    """
    SQLAlchemy-backed CRUD over ``tracking`` / ``tracking_history``.

    Args:
        session_factory: ``async_sessionmaker`` producing sessions on the
            tracking database
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory
        self._locks = KeyedLocks()

    @asynccontextmanager
    async def _serialized(self, tracking_id: str) -> AsyncIterator[None]:
        async with self._locks.hold(tracking_id):
            try:
                yield
            except ResourceNotFoundError:
                self._locks.discard(tracking_id)
                raise

    async def create(
        self,
        tracking_id: str,
        notifications_enabled: bool,
        started_at: datetime,
        status: str,
        delivered: bool,
    ) -> TrackingRecord:
        """
        Create a tracking row together with its first history entry.

        Raises:
            TrackingConflictError: If the tracking ID already exists
            StoreFailureError: On any other database error
        """
        async with self._serialized(tracking_id):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        existing = await db.execute(
                            select(Tracking.id).where(Tracking.tracking_id == tracking_id)
                        )
                        if existing.scalar_one_or_none() is not None:
                            raise TrackingConflictError(tracking_id)

                        db.add(Tracking(
                            tracking_id=tracking_id,
                            notifications_enabled=notifications_enabled,
                            started_at=started_at,
                            last_checked_at=started_at,
                            last_status=status,
                            delivered=delivered,
                        ))
                        # Parent row must exist before the FK'd history row
                        await db.flush()
                        db.add(TrackingHistory(tracking_id=tracking_id, status=status, timestamp=started_at))
            except IntegrityError:
                # Lost a race with another process inserting the same ID
                raise TrackingConflictError(tracking_id)
            except SQLAlchemyError as exc:
                raise StoreFailureError("create", str(exc)) from exc

        logger.info("Tracking %s created with status '%s'", tracking_id, status)
        return await self.get(tracking_id)

    async def get(self, tracking_id: str) -> TrackingRecord:
        """
        Fetch a tracking record with its history in ascending order.

        Raises:
            ResourceNotFoundError: If the tracking ID is unknown
        """
        # Row and history are two SELECTs; no writer may commit in between
        async with self._serialized(tracking_id):
            try:
                async with self._session_factory() as db:
                    tracking = await self._get_row(db, tracking_id)
                    history_result = await db.execute(
                        select(TrackingHistory)
                        .where(TrackingHistory.tracking_id == tracking_id)
                        .order_by(TrackingHistory.timestamp, TrackingHistory.id)
                    )
                    history = history_result.scalars().all()
            except SQLAlchemyError as exc:
                raise StoreFailureError("get", str(exc)) from exc

        return TrackingRecord(
            tracking_id=tracking.tracking_id,
            notifications_enabled=tracking.notifications_enabled,
            started_at=tracking.started_at,
            last_checked_at=tracking.last_checked_at,
            last_status=tracking.last_status,
            delivered=tracking.delivered,
            history=tuple(HistoryEntry(status=row.status, timestamp=row.timestamp) for row in history),
        )

    async def append_history(
        self,
        tracking_id: str,
        status: str,
        timestamp: datetime,
        delivered: bool = False,
    ) -> None:
        """
        Record a status change.

        Inserts the history row and updates ``last_status``,
        ``last_checked_at`` and ``delivered`` in one transaction. A delivered
        record stays delivered even if ``delivered`` is False here.
        """
        async with self._serialized(tracking_id):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        tracking = await self._get_row(db, tracking_id)
                        db.add(TrackingHistory(tracking_id=tracking_id, status=status, timestamp=timestamp))
                        tracking.last_status = status
                        tracking.last_checked_at = timestamp
                        tracking.delivered = tracking.delivered or delivered
            except SQLAlchemyError as exc:
                raise StoreFailureError("append_history", str(exc)) from exc

    async def touch_checked(self, tracking_id: str, timestamp: datetime) -> None:
        """Update ``last_checked_at`` only (poll found no change)."""
        await self._update(tracking_id, "touch_checked", last_checked_at=timestamp)

    async def mark_delivered(self, tracking_id: str, timestamp: datetime) -> None:
        """Flip ``delivered`` without a history row (status string unchanged)."""
        await self._update(tracking_id, "mark_delivered", last_checked_at=timestamp, delivered=True)

    async def delete(self, tracking_id: str) -> None:
        """
        Delete a tracking row; its history cascades.

        Raises:
            ResourceNotFoundError: If the tracking ID is unknown
        """
        async with self._serialized(tracking_id):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        tracking = await self._get_row(db, tracking_id)
                        await db.delete(tracking)
            except SQLAlchemyError as exc:
                raise StoreFailureError("delete", str(exc)) from exc
            self._locks.discard(tracking_id)
        logger.info("Tracking %s deleted", tracking_id)

    async def list_active(self) -> List[str]:
        """Tracking IDs that are not yet delivered."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Tracking.tracking_id)
                    .where(Tracking.delivered == False)  # noqa: E712
                    .order_by(Tracking.id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            raise StoreFailureError("list_active", str(exc)) from exc

    async def _update(self, tracking_id: str, operation: str, **values) -> None:
        async with self._serialized(tracking_id):
            try:
                async with self._session_factory() as db:
                    async with db.begin():
                        result = await db.execute(
                            update(Tracking).where(Tracking.tracking_id == tracking_id).values(**values)
                        )
                        if result.rowcount == 0:
                            raise ResourceNotFoundError("Tracking ID", tracking_id)
            except SQLAlchemyError as exc:
                raise StoreFailureError(operation, str(exc)) from exc

    @staticmethod
    async def _get_row(db: AsyncSession, tracking_id: str) -> Tracking:
        result = await db.execute(select(Tracking).where(Tracking.tracking_id == tracking_id))
        tracking = result.scalar_one_or_none()
        if not tracking:
            raise ResourceNotFoundError("Tracking ID", tracking_id)
        return tracking
