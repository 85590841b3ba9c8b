"""
Shared test doubles: fake clock, scripted providers, recording notifier
and an in-memory Redis stand-in.
"""

import asyncio
from datetime import datetime, timedelta

from parcel_tracker.app.services.notification_service import Notifier
from parcel_tracker.app.services.status_provider import MockStatusProvider, StatusProvider, StatusResult

# One simulated time unit of the mock provider
STEP_SECONDS = 60

TRACKING_ID = "AB123456789GB"


class FakeClock:
    """Manually advanced naive-UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class RecordingNotifier(Notifier):
    def __init__(self):
        self.calls = []

    async def notify(self, tracking_id: str, status: str) -> None:
        self.calls.append((tracking_id, status))


class ScriptedProvider(StatusProvider):
    """Returns queued results in order, repeating the last one."""

    def __init__(self, *results: StatusResult):
        self.results = list(results)
        self.calls = 0

    async def fetch_status(self, tracking_id, started_at, now) -> StatusResult:
        self.calls += 1
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class FailingProvider(StatusProvider):
    def __init__(self, error: Exception = None):
        self.error = error or ConnectionError("carrier API unreachable")
        self.calls = 0

    async def fetch_status(self, tracking_id, started_at, now) -> StatusResult:
        self.calls += 1
        raise self.error


class SlowProvider(StatusProvider):
    """Blocks until released, then answers like the mock provider."""

    def __init__(self, step_seconds: float = STEP_SECONDS):
        self.release = asyncio.Event()
        self.calls = 0
        self._inner = MockStatusProvider(step_seconds=step_seconds)

    async def fetch_status(self, tracking_id, started_at, now) -> StatusResult:
        self.calls += 1
        await self.release.wait()
        return await self._inner.fetch_status(tracking_id, started_at, now)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("redis down")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        self.store = {}


