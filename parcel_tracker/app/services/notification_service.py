"""
Notification Service.

Notification sinks fired by the polling engine on a status change, and the
state management of the in-app notification feed.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

import httpx
from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parcel_tracker.app.core.clock import utcnow
from parcel_tracker.app.models.notification import Notification

logger = logging.getLogger("parcel_tracker.notifications")

NOTIFICATION_TITLE = "Royal Mail Tracking Update"


def build_message(tracking_id: str, status: str) -> str:
    return f"{tracking_id}: {status}"


class Notifier(ABC):
    """Best-effort, fire-and-forget alert for one status change."""

    @abstractmethod
    async def notify(self, tracking_id: str, status: str) -> None:
        ...


class NullNotifier(Notifier):
    """No notification channel available; every call is a no-op."""

    async def notify(self, tracking_id: str, status: str) -> None:
        return None


class InAppNotifier(Notifier):
    """Stores the alert in the in-app notification feed."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def notify(self, tracking_id: str, status: str) -> None:
        async with self._session_factory() as db:
            await NotificationService.create_notification(db, tracking_id, status)
            await db.commit()


class WebhookNotifier(Notifier):
    """POSTs the alert as JSON to an external URL."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def notify(self, tracking_id: str, status: str) -> None:
        payload = {
            "tracking_id": tracking_id,
            "status": status,
            "title": NOTIFICATION_TITLE,
            "message": build_message(tracking_id, status),
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


class CompositeNotifier(Notifier):
    """Fans out to several sinks; a failing sink does not stop the rest."""

    def __init__(self, notifiers: Sequence[Notifier]):
        self.notifiers = list(notifiers)

    async def notify(self, tracking_id: str, status: str) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.notify(tracking_id, status)
            except Exception as exc:
                logger.warning(
                    "%s failed for %s: %s", type(notifier).__name__, tracking_id, exc
                )


class NotificationService:

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        tracking_id: str,
        status: str,
        title: str = NOTIFICATION_TITLE,
    ) -> Notification:
        """Create a single notification."""
        notif = Notification(
            tracking_id=tracking_id,
            title=title,
            message=build_message(tracking_id, status),
            status=status,
        )
        db.add(notif)
        await db.flush()  # Caller commits
        return notif

    @staticmethod
    async def list_notifications(
        db: AsyncSession,
        tracking_id: Optional[str] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        """Newest first, optionally filtered by tracking ID tag."""
        query = select(Notification)
        if tracking_id:
            query = query.where(Notification.tracking_id == tracking_id)
        if unread_only:
            query = query.where(Notification.is_read == False)  # noqa: E712

        query = query.order_by(desc(Notification.id)).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, read_at: Optional[datetime] = None) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id
        ).values(
            is_read=True,
            read_at=read_at or utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, tracking_id: Optional[str] = None) -> int:
        """Mark all unread notifications as read, optionally for one tracking ID."""
        stmt = update(Notification).where(
            Notification.is_read == False  # noqa: E712
        )
        if tracking_id:
            stmt = stmt.where(Notification.tracking_id == tracking_id)
        result = await db.execute(stmt.values(is_read=True, read_at=utcnow()))
        return result.rowcount


def build_notifier(session_factory: async_sessionmaker, webhook_url: Optional[str] = None,
                   webhook_timeout: float = 5.0) -> Notifier:
    """Assemble the configured sinks: in-app feed always, webhook if set."""
    notifiers: List[Notifier] = [InAppNotifier(session_factory)]
    if webhook_url:
        notifiers.append(WebhookNotifier(webhook_url, timeout=webhook_timeout))
    return CompositeNotifier(notifiers)
