"""In-process async event bus.

Handlers run in registration order on the publisher's event loop.  A failing
handler is logged and skipped; it never stops delivery to the others.
"""

import logging
from enum import Enum
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import List

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class EventType(str, Enum):
    """Events raised by the sync engine."""

    # Push committed at least one new change-log entry
    SYNC_CHANGES_COMMITTED = "sync_changes_committed"

    # Device heartbeat
    DEVICE_CURSOR_UPDATED = "device_cursor_updated"

    # Retention GC run finished for a workspace
    GC_COMPLETED = "gc_completed"


class EventBus:
    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}

    async def publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        """Deliver *data* to every handler of *event_type* in turn."""

        # Snapshot: a handler may unsubscribe itself or others mid-dispatch
        handlers = list(self._handlers.get(event_type, ()))
        if not handlers:
            return

        logger.debug(f"Dispatching {event_type.value} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                await handler(data)
            except Exception:
                logger.exception(f"Handler {getattr(handler, '__qualname__', handler)!s} failed on {event_type.value}")

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Register *handler*; registering the same handler twice is a no-op."""

        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[event_type]

    def subscriber_count(self, event_type: EventType) -> int:
        return len(self._handlers.get(event_type, ()))


# Global event bus instance
event_bus = EventBus()
