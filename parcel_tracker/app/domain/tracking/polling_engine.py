"""
Polling Engine (Domain Logic).

The tracking state machine: ACTIVE → DELIVERED (terminal), with a record
absent from the store being implicitly STOPPED.

Each tracked ID owns one scheduled asyncio task that runs a Check every
``check_interval_seconds`` and one lock that keeps Checks for that ID from
interleaving. Periodic Checks swallow provider/store failures and retry on
the next tick; on-demand Checks surface them to the caller.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Dict, Optional

from parcel_tracker.app.core.clock import utcnow
from parcel_tracker.app.core.exceptions import (
    InvalidTrackingIdError,
    ProviderUnavailableError,
    ResourceNotFoundError,
    StoreFailureError,
    TrackingConflictError,
)
from parcel_tracker.app.core.locks import KeyedLocks
from parcel_tracker.app.core.reliability import CircuitBreaker, CircuitOpenError
from parcel_tracker.app.domain.tracking.records import CheckResult, TrackingRecord
from parcel_tracker.app.services.cache import TrackingCache
from parcel_tracker.app.services.notification_service import Notifier, NullNotifier
from parcel_tracker.app.services.status_provider import StatusProvider, StatusResult
from parcel_tracker.app.services.tracking_store import TrackingStore
from parcel_tracker.app.services.validator import normalize_tracking_id, validate_tracking_id

logger = logging.getLogger("parcel_tracker.polling")


class PollingEngine:
    """
    Owns the tracking lifecycle: Add, Get, Check, Stop.

    Args:
        store: Tracking record store (source of truth)
        provider: Carrier status lookup
        notifier: Sink fired once per detected status change
        cache: Optional advisory read-through cache
        check_interval_seconds: Delay between periodic Checks
        provider_timeout_seconds: Upper bound on one provider call
        circuit_breaker: Guards provider calls; a default one is created
        polling_enabled: When False, nothing is scheduled (on-demand only)
        clock: Returns the current naive UTC time
    """

    def __init__(
        self,
        store: TrackingStore,
        provider: StatusProvider,
        notifier: Optional[Notifier] = None,
        cache: Optional[TrackingCache] = None,
        check_interval_seconds: float = 15 * 60,
        provider_timeout_seconds: float = 10,
        circuit_breaker: Optional[CircuitBreaker] = None,
        polling_enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._provider = provider
        self._notifier = notifier or NullNotifier()
        self._cache = cache
        self.check_interval_seconds = check_interval_seconds
        self.provider_timeout_seconds = provider_timeout_seconds
        self._breaker = circuit_breaker or CircuitBreaker(name="status_provider")
        self.polling_enabled = polling_enabled
        self._clock = clock

        self._tasks: Dict[str, asyncio.Task] = {}
        self._check_locks = KeyedLocks()
        # Wall-clock time each scheduled task will next run a Check
        self._next_due: Dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def add(self, raw_tracking_id: str, notifications_enabled: bool = False) -> TrackingRecord:
        """
        Start tracking a parcel.

        Flow:
        1. Validate the ID (before touching store or provider)
        2. Reject duplicates
        3. Query the provider once
        4. Create the record with its first history entry
        5. Schedule periodic Checks unless already delivered

        Raises:
            InvalidTrackingIdError: Malformed ID
            TrackingConflictError: ID already tracked
            ProviderUnavailableError: First status lookup failed
            StoreFailureError: Record could not be persisted
        """
        if not validate_tracking_id(raw_tracking_id):
            raise InvalidTrackingIdError(raw_tracking_id)
        tracking_id = normalize_tracking_id(raw_tracking_id)

        if await self._exists(tracking_id):
            raise TrackingConflictError(tracking_id)

        now = self._clock()
        result = await self._fetch_status(tracking_id, now, now)

        record = await self._store.create(
            tracking_id=tracking_id,
            notifications_enabled=notifications_enabled,
            started_at=now,
            status=result.status,
            delivered=result.delivered,
        )
        if self._cache:
            await self._cache.set(record)

        if not record.delivered:
            self.schedule(tracking_id)
        logger.info("Tracking %s added (%s)", tracking_id, record.state.value)
        return record

    async def get(self, raw_tracking_id: str) -> TrackingRecord:
        """Read-through lookup: cache first, store on miss."""
        tracking_id = normalize_tracking_id(raw_tracking_id)
        if self._cache:
            cached = await self._cache.get(tracking_id)
            if cached is not None:
                return cached

        # Fill the cache under the check lock so a concurrent Stop or Check
        # cannot be overwritten by the record read here
        async with self._serialized(tracking_id):
            record = await self._store.get(tracking_id)
            if self._cache:
                await self._cache.set(record)
        return record

    async def check(self, raw_tracking_id: str) -> CheckResult:
        """
        On-demand Check.

        Waits for any Check already running on the same ID. No-op on a
        delivered record.

        Raises:
            ResourceNotFoundError: Unknown ID
            ProviderUnavailableError: Provider failed or timed out
            StoreFailureError: Persistence failed
        """
        tracking_id = normalize_tracking_id(raw_tracking_id)
        async with self._serialized(tracking_id):
            result = await self._check_locked(tracking_id)

        if result.delivered:
            self._cancel_task(tracking_id)
        return result

    async def stop(self, raw_tracking_id: str) -> None:
        """
        Stop tracking: cancel the scheduled Check, then delete the record.

        The scheduled task is cancelled even when the ID is unknown.

        Raises:
            ResourceNotFoundError: Unknown ID
        """
        tracking_id = normalize_tracking_id(raw_tracking_id)
        await self.cancel(tracking_id)

        # Let an on-demand Check already in flight commit first
        async with self._serialized(tracking_id):
            try:
                await self._store.delete(tracking_id)
            finally:
                if self._cache:
                    await self._cache.invalidate(tracking_id)
                self._check_locks.discard(tracking_id)
        logger.info("Tracking %s stopped", tracking_id)

    def next_check_at(self, record: TrackingRecord) -> Optional[datetime]:
        """
        When the scheduled task will run its next Check.

        None once delivered, and whenever no task is scheduled for the ID
        (for example with polling disabled).
        """
        if record.delivered or not self.is_scheduled(record.tracking_id):
            return None
        return self._next_due.get(record.tracking_id)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, tracking_id: str) -> Optional[asyncio.Task]:
        """Start the periodic Check task for an ID (idempotent)."""
        if not self.polling_enabled:
            return None

        task = self._tasks.get(tracking_id)
        if task is not None and not task.done():
            return task

        self._next_due[tracking_id] = self._due_after_interval()
        task = asyncio.create_task(self._poll_loop(tracking_id), name=f"poll:{tracking_id}")
        self._tasks[tracking_id] = task
        task.add_done_callback(lambda done, tid=tracking_id: self._forget_task(tid, done))
        return task

    def is_scheduled(self, tracking_id: str) -> bool:
        task = self._tasks.get(normalize_tracking_id(tracking_id))
        return task is not None and not task.done()

    async def cancel(self, tracking_id: str) -> None:
        """Cancel the scheduled task for an ID and wait until it is gone."""
        task = self._cancel_task(tracking_id)
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def resume_active(self) -> int:
        """Schedule every non-delivered record (application startup)."""
        tracking_ids = await self._store.list_active()
        for tracking_id in tracking_ids:
            self.schedule(tracking_id)
        if tracking_ids:
            logger.info("Resumed polling for %d tracking IDs", len(tracking_ids))
        return len(tracking_ids)

    async def shutdown(self) -> None:
        """Cancel all scheduled tasks."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._next_due.clear()

    async def tick(self, tracking_id: str) -> bool:
        """
        One periodic Check.

        Skipped if a Check for the same ID is still running. Failures are
        logged and left for the next tick.

        Returns:
            False when polling for this ID should end (delivered or gone)
        """
        if self._check_locks.locked(tracking_id):
            logger.debug("Check for %s still running, skipping tick", tracking_id)
            return True

        try:
            async with self._serialized(tracking_id):
                result = await self._check_locked(tracking_id)
        except ResourceNotFoundError:
            logger.info("Tracking %s no longer exists, polling ends", tracking_id)
            return False
        except (ProviderUnavailableError, StoreFailureError) as exc:
            logger.warning("Periodic check for %s failed, retrying next tick: %s", tracking_id, exc.message)
            return True
        except Exception:
            logger.exception("Unexpected error during periodic check for %s", tracking_id)
            return True

        return not result.delivered

    async def _poll_loop(self, tracking_id: str) -> None:
        while True:
            await asyncio.sleep(self.check_interval_seconds)
            if not await self.tick(tracking_id):
                return
            self._next_due[tracking_id] = self._due_after_interval()

    def _due_after_interval(self) -> datetime:
        return self._clock() + timedelta(seconds=self.check_interval_seconds)

    def _cancel_task(self, tracking_id: str) -> Optional[asyncio.Task]:
        task = self._tasks.pop(tracking_id, None)
        self._next_due.pop(tracking_id, None)
        if task is None or task.done() or task is asyncio.current_task():
            return None
        task.cancel()
        return task

    def _forget_task(self, tracking_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(tracking_id) is task:
            del self._tasks[tracking_id]
            self._next_due.pop(tracking_id, None)

    @asynccontextmanager
    async def _serialized(self, tracking_id: str) -> AsyncIterator[None]:
        """Hold the check lock; drop it if the record turns out to be gone."""
        async with self._check_locks.hold(tracking_id):
            try:
                yield
            except ResourceNotFoundError:
                self._check_locks.discard(tracking_id)
                raise

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    async def _check_locked(self, tracking_id: str) -> CheckResult:
        record = await self._store.get(tracking_id)

        if record.delivered:
            return CheckResult(
                tracking_id=tracking_id,
                status=record.last_status,
                delivered=True,
                status_changed=False,
                notifications_enabled=record.notifications_enabled,
            )

        now = self._clock()
        result = await self._fetch_status(tracking_id, record.started_at, now)

        # Exact, case-sensitive comparison is the only change signal
        status_changed = result.status != record.last_status
        if status_changed:
            await self._store.append_history(tracking_id, result.status, now, delivered=result.delivered)
        elif result.delivered:
            await self._store.mark_delivered(tracking_id, now)
        else:
            await self._store.touch_checked(tracking_id, now)

        await self._refresh_cache(tracking_id)

        if status_changed:
            logger.info("Tracking %s status changed: '%s' -> '%s'", tracking_id, record.last_status, result.status)
            if record.notifications_enabled:
                await self._notify(tracking_id, result.status)
        if result.delivered:
            logger.info("Tracking %s delivered, polling stops", tracking_id)

        return CheckResult(
            tracking_id=tracking_id,
            status=result.status,
            delivered=result.delivered,
            status_changed=status_changed,
            notifications_enabled=record.notifications_enabled,
        )

    async def _fetch_status(self, tracking_id: str, started_at: datetime, now: datetime) -> StatusResult:
        try:
            return await self._breaker.call(
                self._provider.fetch_status,
                tracking_id,
                started_at,
                now,
                timeout=self.provider_timeout_seconds,
            )
        except CircuitOpenError as exc:
            raise ProviderUnavailableError(str(exc)) from exc
        except asyncio.TimeoutError as exc:
            raise ProviderUnavailableError("Status provider timed out") from exc
        except Exception as exc:
            raise ProviderUnavailableError(f"Status provider failed: {exc}") from exc

    async def _exists(self, tracking_id: str) -> bool:
        try:
            await self._store.get(tracking_id)
        except ResourceNotFoundError:
            return False
        return True

    async def _refresh_cache(self, tracking_id: str) -> None:
        if not self._cache:
            return
        try:
            record = await self._store.get(tracking_id)
        except (ResourceNotFoundError, StoreFailureError):
            await self._cache.invalidate(tracking_id)
            return
        await self._cache.set(record)

    async def _notify(self, tracking_id: str, status: str) -> None:
        try:
            await self._notifier.notify(tracking_id, status)
        except Exception as exc:
            logger.warning("Notification for %s failed: %s", tracking_id, exc)
