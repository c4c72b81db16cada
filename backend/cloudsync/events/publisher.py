"""Single entry point for publishing events.

Publishing failures are logged and swallowed: a committed push must never be
reported as failed because a live subscriber misbehaved.

Request handlers use :func:`publish_event_fire_and_forget` so a slow watch
client cannot hold up the response; the dispatch runs as a tracked task on
the request's event loop.
"""

import asyncio
import logging
from typing import Any
from typing import Dict

from . import EventType
from . import event_bus

logger = logging.getLogger(__name__)

# Fire-and-forget dispatches still running; holds references until done
_active_tasks: set = set()


async def publish_event(event_type: EventType, data: Dict[str, Any]) -> None:
    """Publish *data* on the global bus and wait for every handler.

    Usage:
        await publish_event(EventType.GC_COMPLETED, {"workspace_id": "w1", "purged": 3})
    """
    try:
        await event_bus.publish(event_type, data)
    except Exception as e:
        logger.error(f"Failed to publish event {event_type}: {e}")


def publish_event_fire_and_forget(event_type: EventType, data: Dict[str, Any]) -> None:
    """Schedule :func:`publish_event` without waiting for the handlers.

    Must be called from code running on an event loop.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.error(f"Cannot publish {event_type} in the background - no running event loop")
        return

    task = loop.create_task(publish_event(event_type, data))
    _active_tasks.add(task)
    task.add_done_callback(_active_tasks.discard)


async def shutdown_event_publisher(timeout: float = 10.0) -> None:
    """Wait for pending background dispatches, cancelling whatever outlives *timeout*."""

    if not _active_tasks:
        return

    pending = list(_active_tasks)
    logger.info(f"Waiting for {len(pending)} event dispatch task(s)")
    _, still_running = await asyncio.wait(pending, timeout=timeout)
    for task in still_running:
        task.cancel()
    if still_running:
        await asyncio.gather(*still_running, return_exceptions=True)
        logger.warning(f"Cancelled {len(still_running)} event dispatch task(s) at shutdown")


def get_active_task_count() -> int:
    return len(_active_tasks)


__all__ = [
    "publish_event",
    "publish_event_fire_and_forget",
    "shutdown_event_publisher",
    "get_active_task_count",
]
