import asyncio

import pytest
from prometheus_client import REGISTRY

from cloudsync.events import EventBus
from cloudsync.events import EventType
from cloudsync.events import observers
from cloudsync.events import publisher


def _sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def local_bus(monkeypatch, bus):
    """Route the module-level publisher helpers through an isolated bus."""
    monkeypatch.setattr(publisher, "event_bus", bus)
    return bus


# ---------------------------------------------------------------------------
# EventBus
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_handlers_run_in_registration_order(bus):
    seen = []

    async def first(data):
        seen.append(("first", data["n"]))

    async def second(data):
        seen.append(("second", data["n"]))

    bus.subscribe(EventType.GC_COMPLETED, first)
    bus.subscribe(EventType.GC_COMPLETED, second)
    bus.subscribe(EventType.GC_COMPLETED, first)

    await bus.publish(EventType.GC_COMPLETED, {"n": 1})

    assert seen == [("first", 1), ("second", 1)]
    assert bus.subscriber_count(EventType.GC_COMPLETED) == 2


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_delivery(bus):
    delivered = []

    async def broken(data):
        raise RuntimeError("boom")

    async def healthy(data):
        delivered.append(data)

    bus.subscribe(EventType.SYNC_CHANGES_COMMITTED, broken)
    bus.subscribe(EventType.SYNC_CHANGES_COMMITTED, healthy)

    await bus.publish(EventType.SYNC_CHANGES_COMMITTED, {"workspace_id": "ws-1", "server_version": 1})

    assert delivered == [{"workspace_id": "ws-1", "server_version": 1}]


def test_unsubscribe_forgets_empty_event_types(bus):
    async def handler(data):
        return None

    bus.subscribe(EventType.DEVICE_CURSOR_UPDATED, handler)
    bus.unsubscribe(EventType.DEVICE_CURSOR_UPDATED, handler)
    bus.unsubscribe(EventType.DEVICE_CURSOR_UPDATED, handler)

    assert bus.subscriber_count(EventType.DEVICE_CURSOR_UPDATED) == 0


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_observers_count_heartbeats_and_gc_runs(bus):
    observers.register_observers(bus)
    reports_before = _sample("sync_device_cursor_reports_total")
    partial_before = _sample("sync_gc_runs_total", result="partial")
    complete_before = _sample("sync_gc_runs_total", result="complete")

    await bus.publish(
        EventType.DEVICE_CURSOR_UPDATED,
        {"workspace_id": "ws-1", "device_id": "d1", "last_seen_version": 3},
    )
    await bus.publish(EventType.GC_COMPLETED, {"workspace_id": "ws-1", "purged": 5, "has_more": True})
    await bus.publish(EventType.GC_COMPLETED, {"workspace_id": "ws-1", "purged": 0, "has_more": False})

    assert _sample("sync_device_cursor_reports_total") == reports_before + 1
    assert _sample("sync_gc_runs_total", result="partial") == partial_before + 1
    assert _sample("sync_gc_runs_total", result="complete") == complete_before + 1

    observers.unregister_observers(bus)
    assert bus.subscriber_count(EventType.GC_COMPLETED) == 0
    assert bus.subscriber_count(EventType.DEVICE_CURSOR_UPDATED) == 0


# ---------------------------------------------------------------------------
# Background publishing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fire_and_forget_returns_before_handlers_finish(local_bus):
    release = asyncio.Event()
    finished = []

    async def slow(data):
        await release.wait()
        finished.append(data["server_version"])

    local_bus.subscribe(EventType.SYNC_CHANGES_COMMITTED, slow)

    publisher.publish_event_fire_and_forget(
        EventType.SYNC_CHANGES_COMMITTED, {"workspace_id": "ws-1", "server_version": 7}
    )

    assert finished == []
    assert publisher.get_active_task_count() == 1

    release.set()
    await publisher.shutdown_event_publisher()
    await asyncio.sleep(0)

    assert finished == [7]
    assert publisher.get_active_task_count() == 0


@pytest.mark.asyncio
async def test_shutdown_cancels_dispatches_that_outlive_the_timeout(local_bus):
    async def stuck(data):
        await asyncio.sleep(60)

    local_bus.subscribe(EventType.SYNC_CHANGES_COMMITTED, stuck)
    publisher.publish_event_fire_and_forget(
        EventType.SYNC_CHANGES_COMMITTED, {"workspace_id": "ws-1", "server_version": 1}
    )

    await publisher.shutdown_event_publisher(timeout=0.05)
    await asyncio.sleep(0)

    assert publisher.get_active_task_count() == 0


def test_fire_and_forget_without_loop_is_dropped(local_bus):
    publisher.publish_event_fire_and_forget(EventType.GC_COMPLETED, {"workspace_id": "ws-1"})
    assert publisher.get_active_task_count() == 0
