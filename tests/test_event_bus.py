"""Unit tests for EventBus.

Core, non-GUI logic: subscribe/emit/unsubscribe, ordering, error
re-emission and metrics.
"""

import asyncio
import pytest

from cliptomic import EventTypes
from cliptomic.controllers.event_bus import EventBus, EventBusError


@pytest.mark.asyncio
async def test_emit_and_wait_calls_both_async_and_sync_handlers():
    bus = EventBus(enable_metrics=True)

    called = []

    async def async_handler(event):
        called.append(("async", event.data))
        return "async_result"

    def sync_handler(event):
        called.append(("sync", event.data))
        return "sync_result"

    sid1 = await bus.subscribe("tests.event", async_handler)
    sid2 = await bus.subscribe("tests.event", sync_handler)

    results = await bus.emit_and_wait("tests.event", data={"foo": "bar"}, timeout=2.0)

    assert "async_result" in results
    assert "sync_result" in results

    metrics = await bus.get_metrics()
    assert metrics["handlers_called"] >= 2

    assert await bus.unsubscribe(sid1) is True
    assert await bus.unsubscribe(sid2) is True
    assert await bus.unsubscribe(sid2) is False
    await bus.shutdown()


@pytest.mark.asyncio
async def test_once_subscription_removed_after_called():
    bus = EventBus()

    counter = {"count": 0}

    async def handler(event):
        counter["count"] += 1

    await bus.subscribe("tests.once", handler, once=True)

    await bus.emit_and_wait("tests.once", data=1)

    # Queued emit should not reach the removed subscription
    await bus.emit("tests.once", data=2)
    await asyncio.sleep(0.1)

    assert counter["count"] == 1

    await bus.shutdown()


@pytest.mark.asyncio
async def test_higher_priority_handlers_run_first():
    bus = EventBus()
    order = []

    await bus.subscribe("tests.priority", lambda e: order.append("low"), priority=1)
    await bus.subscribe("tests.priority", lambda e: order.append("high"), priority=100)

    await bus.emit_and_wait("tests.priority")

    assert order == ["high", "low"]
    await bus.shutdown()


@pytest.mark.asyncio
async def test_queued_events_are_delivered_in_order():
    bus = EventBus()
    seen = []
    done = asyncio.Event()

    async def handler(event):
        seen.append(event.data)
        if len(seen) == 3:
            done.set()

    await bus.subscribe("tests.order", handler)

    for i in range(3):
        await bus.emit("tests.order", data=i)

    await asyncio.wait_for(done.wait(), timeout=1.0)
    assert seen == [0, 1, 2]
    await bus.shutdown()


@pytest.mark.asyncio
async def test_failing_handler_is_reported_as_error_event():
    bus = EventBus(enable_metrics=True)
    errors = []
    reported = asyncio.Event()

    def broken(event):
        raise ValueError("boom")

    async def on_error(event):
        errors.append(event.data)
        reported.set()

    await bus.subscribe("tests.broken", broken)
    await bus.subscribe(EventTypes.ERROR_OCCURRED, on_error)

    results = await bus.emit_and_wait("tests.broken")
    assert results == []

    await asyncio.wait_for(reported.wait(), timeout=1.0)
    assert errors[0]["error"] == "boom"
    assert errors[0]["original_event"] == "tests.broken"

    metrics = await bus.get_metrics()
    assert metrics["handler_errors"] == 1
    await bus.shutdown()


@pytest.mark.asyncio
async def test_subscribe_rejects_non_callable():
    bus = EventBus()

    with pytest.raises(EventBusError):
        await bus.subscribe("tests.bad", "not callable")

    await bus.shutdown()


@pytest.mark.asyncio
async def test_emit_ignored_during_shutdown():
    bus = EventBus(enable_metrics=True)

    bus._shutdown_requested = True

    await bus.emit("tests.shutdown", data=None)

    metrics = await bus.get_metrics()
    assert metrics["events_emitted"] == 0
    assert bus.is_shutdown()

    await bus.shutdown()


@pytest.mark.asyncio
async def test_queue_overflow_drops_events():
    bus = EventBus(max_queue_size=0, enable_metrics=True)

    await bus.emit("tests.overflow")

    metrics = await bus.get_metrics()
    assert metrics["queue_overflows"] == 1
    assert metrics["events_emitted"] == 0
    await bus.shutdown()
