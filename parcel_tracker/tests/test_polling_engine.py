"""
Tests for the polling engine state machine.

Add / Check / Stop transitions, history growth, notifications and the
delivered terminal state.
"""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock

from parcel_tracker.app.core.exceptions import (
    InvalidTrackingIdError,
    ResourceNotFoundError,
    TrackingConflictError,
)
from parcel_tracker.app.models.tracking_enums import TrackingState
from parcel_tracker.app.services.status_provider import StatusResult
from parcel_tracker.tests.support import STEP_SECONDS, TRACKING_ID, ScriptedProvider


# TEST 1: Add
@pytest.mark.asyncio
async def test_add_creates_active_record_with_one_history_entry(polling_engine, clock):
    record = await polling_engine.add(TRACKING_ID, notifications_enabled=True)

    assert record.state == TrackingState.ACTIVE
    assert record.last_status == "Item received by Royal Mail"
    assert [(e.status, e.timestamp) for e in record.history] == [("Item received by Royal Mail", clock.now)]
    assert polling_engine.is_scheduled(TRACKING_ID)


@pytest.mark.asyncio
async def test_add_normalizes_tracking_id(polling_engine):
    record = await polling_engine.add("  ab123456789gb ")

    assert record.tracking_id == TRACKING_ID
    assert (await polling_engine.get(TRACKING_ID)).tracking_id == TRACKING_ID


@pytest.mark.asyncio
async def test_add_invalid_id_touches_nothing(make_engine, provider, store):
    provider.fetch_status = AsyncMock(wraps=provider.fetch_status)
    engine = make_engine(provider)
    store.create = AsyncMock(wraps=store.create)

    with pytest.raises(InvalidTrackingIdError):
        await engine.add("AB123456789G")

    provider.fetch_status.assert_not_called()
    store.create.assert_not_called()
    assert await store.list_active() == []


@pytest.mark.asyncio
async def test_add_twice_conflicts_without_overwrite(polling_engine, clock):
    first = await polling_engine.add(TRACKING_ID, notifications_enabled=False)
    clock.advance(STEP_SECONDS * 2)

    with pytest.raises(TrackingConflictError):
        await polling_engine.add(TRACKING_ID, notifications_enabled=True)

    record = await polling_engine.get(TRACKING_ID)
    assert record == first


@pytest.mark.asyncio
async def test_add_already_delivered_is_not_scheduled(make_engine):
    engine = make_engine(ScriptedProvider(StatusResult("Delivered and signed for", True)))

    record = await engine.add(TRACKING_ID)

    assert record.state == TrackingState.DELIVERED
    assert len(record.history) == 1
    assert not engine.is_scheduled(TRACKING_ID)


# TEST 2: Full lifecycle
@pytest.mark.asyncio
async def test_tracking_lifecycle_until_delivered(polling_engine, clock, notifier):
    t0 = clock.now
    await polling_engine.add(TRACKING_ID, notifications_enabled=True)

    clock.advance(STEP_SECONDS)
    result = await polling_engine.check(TRACKING_ID)
    assert result.status_changed is True
    assert result.status == "In transit to delivery depot"
    record = await polling_engine.get(TRACKING_ID)
    assert len(record.history) == 2
    assert record.last_status == "In transit to delivery depot"

    clock.advance(STEP_SECONDS * 4)
    result = await polling_engine.check(TRACKING_ID)
    assert result.delivered is True
    assert result.status == "Delivered and signed for"

    record = await polling_engine.get(TRACKING_ID)
    assert record.state == TrackingState.DELIVERED
    assert [(e.status, e.timestamp) for e in record.history] == [
        ("Item received by Royal Mail", t0),
        ("In transit to delivery depot", t0 + timedelta(seconds=STEP_SECONDS)),
        ("Delivered and signed for", t0 + timedelta(seconds=STEP_SECONDS * 5)),
    ]
    assert not polling_engine.is_scheduled(TRACKING_ID)
    assert notifier.calls == [
        (TRACKING_ID, "In transit to delivery depot"),
        (TRACKING_ID, "Delivered and signed for"),
    ]


# TEST 3: Unchanged status
@pytest.mark.asyncio
async def test_unchanged_status_only_advances_last_checked(polling_engine, clock, notifier):
    await polling_engine.add(TRACKING_ID, notifications_enabled=True)

    for _ in range(3):
        clock.advance(10)
        result = await polling_engine.check(TRACKING_ID)
        assert result.status_changed is False
        record = await polling_engine.get(TRACKING_ID)
        assert record.last_checked_at == clock.now

    assert len(record.history) == 1
    assert notifier.calls == []


# TEST 4: Delivered is terminal
@pytest.mark.asyncio
async def test_check_after_delivery_is_noop(make_engine, clock, notifier):
    provider = ScriptedProvider(
        StatusResult("Item received by Royal Mail", False),
        StatusResult("Delivered and signed for", True),
        StatusResult("Returned to sender", False),
    )
    engine = make_engine(provider)
    await engine.add(TRACKING_ID, notifications_enabled=True)
    await engine.check(TRACKING_ID)
    delivered = await engine.get(TRACKING_ID)
    calls_before = provider.calls

    clock.advance(STEP_SECONDS)
    result = await engine.check(TRACKING_ID)

    assert result.delivered is True
    assert result.status_changed is False
    assert result.status == "Delivered and signed for"
    assert provider.calls == calls_before
    assert await engine.get(TRACKING_ID) == delivered
    assert notifier.calls == [(TRACKING_ID, "Delivered and signed for")]


@pytest.mark.asyncio
async def test_delivery_recognized_when_status_text_unchanged(make_engine, notifier):
    provider = ScriptedProvider(
        StatusResult("Out for delivery", False),
        StatusResult("Out for delivery", True),
    )
    engine = make_engine(provider)
    await engine.add(TRACKING_ID, notifications_enabled=True)

    result = await engine.check(TRACKING_ID)

    assert result.delivered is True
    assert result.status_changed is False
    record = await engine.get(TRACKING_ID)
    assert record.state == TrackingState.DELIVERED
    assert len(record.history) == 1
    assert notifier.calls == []
    assert not engine.is_scheduled(TRACKING_ID)


@pytest.mark.asyncio
async def test_status_comparison_is_case_sensitive(make_engine):
    provider = ScriptedProvider(
        StatusResult("In transit", False),
        StatusResult("IN TRANSIT", False),
    )
    engine = make_engine(provider)
    await engine.add(TRACKING_ID)

    result = await engine.check(TRACKING_ID)

    assert result.status_changed is True
    assert len((await engine.get(TRACKING_ID)).history) == 2


# TEST 5: Notifications
@pytest.mark.asyncio
async def test_no_notification_when_disabled(polling_engine, clock, notifier):
    await polling_engine.add(TRACKING_ID, notifications_enabled=False)
    clock.advance(STEP_SECONDS)

    result = await polling_engine.check(TRACKING_ID)

    assert result.status_changed is True
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_notifier_failure_does_not_break_check(make_engine, provider, clock):
    broken = AsyncMock()
    broken.notify.side_effect = RuntimeError("push service down")
    engine = make_engine(provider, notifier=broken)
    await engine.add(TRACKING_ID, notifications_enabled=True)
    clock.advance(STEP_SECONDS)

    result = await engine.check(TRACKING_ID)

    assert result.status_changed is True
    broken.notify.assert_awaited_once_with(TRACKING_ID, "In transit to delivery depot")
    assert (await engine.get(TRACKING_ID)).last_status == "In transit to delivery depot"


# TEST 6: Stop
@pytest.mark.asyncio
async def test_stop_deletes_record_and_cancels_polling(polling_engine):
    await polling_engine.add(TRACKING_ID)
    assert polling_engine.is_scheduled(TRACKING_ID)

    await polling_engine.stop(TRACKING_ID)

    assert not polling_engine.is_scheduled(TRACKING_ID)
    with pytest.raises(ResourceNotFoundError):
        await polling_engine.get(TRACKING_ID)
    with pytest.raises(ResourceNotFoundError):
        await polling_engine.check(TRACKING_ID)


@pytest.mark.asyncio
async def test_readd_after_stop_starts_fresh_history(polling_engine, clock):
    await polling_engine.add(TRACKING_ID)
    clock.advance(STEP_SECONDS)
    await polling_engine.check(TRACKING_ID)
    await polling_engine.stop(TRACKING_ID)

    record = await polling_engine.add(TRACKING_ID)

    assert len(record.history) == 1
    assert record.last_status == "Item received by Royal Mail"
    assert record.started_at == clock.now


@pytest.mark.asyncio
async def test_stop_unknown_raises_not_found(polling_engine):
    with pytest.raises(ResourceNotFoundError):
        await polling_engine.stop(TRACKING_ID)


@pytest.mark.asyncio
async def test_stop_delivered_record(polling_engine, clock):
    await polling_engine.add(TRACKING_ID)
    clock.advance(STEP_SECONDS * 5)
    await polling_engine.check(TRACKING_ID)

    await polling_engine.stop(TRACKING_ID)

    with pytest.raises(ResourceNotFoundError):
        await polling_engine.get(TRACKING_ID)


# TEST 7: Scheduling
@pytest.mark.asyncio
async def test_periodic_polling_runs_until_delivered(make_engine, provider, clock):
    engine = make_engine(provider, check_interval_seconds=0.01)
    await engine.add(TRACKING_ID)
    task = engine._tasks[TRACKING_ID]

    clock.advance(STEP_SECONDS * 5)
    await asyncio.wait_for(task, timeout=2)

    record = await engine.get(TRACKING_ID)
    assert record.delivered is True
    assert record.history[-1].status == "Delivered and signed for"
    assert not engine.is_scheduled(TRACKING_ID)


@pytest.mark.asyncio
async def test_periodic_polling_ends_when_record_disappears(make_engine, provider, store):
    engine = make_engine(provider, check_interval_seconds=0.01)
    await engine.add(TRACKING_ID)
    task = engine._tasks[TRACKING_ID]

    await store.delete(TRACKING_ID)
    await asyncio.wait_for(task, timeout=2)

    assert not engine.is_scheduled(TRACKING_ID)


@pytest.mark.asyncio
async def test_polling_disabled_schedules_nothing(make_engine, provider):
    engine = make_engine(provider, polling_enabled=False)

    await engine.add(TRACKING_ID)

    assert not engine.is_scheduled(TRACKING_ID)


@pytest.mark.asyncio
async def test_resume_active_schedules_undelivered_only(make_engine, provider, store, clock):
    await store.create("AB123456789GB", False, clock.now, "In transit to delivery depot", False)
    await store.create("CD987654321GB", False, clock.now, "Delivered and signed for", True)
    engine = make_engine(provider)

    resumed = await engine.resume_active()

    assert resumed == 1
    assert engine.is_scheduled("AB123456789GB")
    assert not engine.is_scheduled("CD987654321GB")


@pytest.mark.asyncio
async def test_next_check_at(polling_engine, clock):
    record = await polling_engine.add(TRACKING_ID)

    assert polling_engine.next_check_at(record) == clock.now + timedelta(seconds=900)

    clock.advance(STEP_SECONDS * 5)
    await polling_engine.check(TRACKING_ID)
    assert polling_engine.next_check_at(await polling_engine.get(TRACKING_ID)) is None


# TEST 8: Read-through cache
@pytest.mark.asyncio
async def test_cache_is_refreshed_after_every_mutation(polling_engine, cache, clock):
    await polling_engine.add(TRACKING_ID)
    assert (await cache.get(TRACKING_ID)).last_status == "Item received by Royal Mail"

    clock.advance(STEP_SECONDS)
    await polling_engine.check(TRACKING_ID)
    assert (await cache.get(TRACKING_ID)).last_status == "In transit to delivery depot"

    await polling_engine.stop(TRACKING_ID)
    assert await cache.get(TRACKING_ID) is None


@pytest.mark.asyncio
async def test_cache_outage_falls_back_to_store(polling_engine, redis_client):
    redis_client.fail = True

    await polling_engine.add(TRACKING_ID)
    record = await polling_engine.get(TRACKING_ID)

    assert record.last_status == "Item received by Royal Mail"


@pytest.mark.asyncio
async def test_next_check_at_follows_schedule_not_on_demand_checks(polling_engine, clock):
    await polling_engine.add(TRACKING_ID)
    due = clock.now + timedelta(seconds=900)

    clock.advance(30)
    await polling_engine.check(TRACKING_ID)

    record = await polling_engine.get(TRACKING_ID)
    assert record.last_checked_at == clock.now
    assert polling_engine.next_check_at(record) == due


@pytest.mark.asyncio
async def test_next_check_at_advances_after_periodic_tick(make_engine, provider, clock):
    engine = make_engine(provider, check_interval_seconds=0.01)
    await engine.add(TRACKING_ID)

    clock.advance(10)
    for _ in range(100):
        record = await engine.get(TRACKING_ID)
        if record.last_checked_at == clock.now:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.01)

    assert engine.next_check_at(record) == clock.now + timedelta(seconds=0.01)


@pytest.mark.asyncio
async def test_next_check_at_none_without_polling(make_engine, provider):
    engine = make_engine(provider, polling_enabled=False)

    record = await engine.add(TRACKING_ID)

    assert record.state == TrackingState.ACTIVE
    assert engine.next_check_at(record) is None
    assert [s.value for s in TrackingState] == ["ACTIVE", "DELIVERED"]
