"""Operational observers for sync events.

Counts and logs device heartbeats and finished GC runs.  Registered from the
application lifespan; the subscription relay consumes
``SYNC_CHANGES_COMMITTED`` on its own.
"""

import logging
from typing import Any
from typing import Dict

from cloudsync.metrics import sync_device_cursor_reports_total
from cloudsync.metrics import sync_gc_runs_total

from .event_bus import EventBus
from .event_bus import EventType
from .event_bus import event_bus

logger = logging.getLogger(__name__)


async def on_device_cursor_updated(data: Dict[str, Any]) -> None:
    sync_device_cursor_reports_total.inc()
    logger.debug(
        f"Device {data.get('device_id')} in {data.get('workspace_id')} at v{data.get('last_seen_version')}"
    )


async def on_gc_completed(data: Dict[str, Any]) -> None:
    result = "partial" if data.get("has_more") else "complete"
    sync_gc_runs_total.labels(result=result).inc()
    if data.get("purged"):
        logger.info(
            f"GC {data.get('workspace_id')} purged {data['purged']} row(s) "
            f"(continuation {data.get('continuation_count', 0)}, {result})"
        )


_OBSERVERS = (
    (EventType.DEVICE_CURSOR_UPDATED, on_device_cursor_updated),
    (EventType.GC_COMPLETED, on_gc_completed),
)


def register_observers(bus: EventBus = event_bus) -> None:
    for event_type, handler in _OBSERVERS:
        bus.subscribe(event_type, handler)


def unregister_observers(bus: EventBus = event_bus) -> None:
    for event_type, handler in _OBSERVERS:
        bus.unsubscribe(event_type, handler)


__all__ = ["register_observers", "unregister_observers", "on_device_cursor_updated", "on_gc_completed"]
