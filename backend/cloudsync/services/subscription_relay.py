"""Live delivery of change-log deltas to subscribers.

A subscription is a standing ``watch_changes`` query for one workspace.  The
relay evaluates it once on subscribe and again whenever a push commits a
version above the subscription's cursor, handing every non-empty result to
the subscriber's callback.

The relay never moves a cursor on its own.  Subscribers call
:meth:`Subscription.advance` once they have consumed a batch and may ask for
the next page with :meth:`SubscriptionRelay.refresh`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import Dict
from typing import Optional

from sqlalchemy.orm import sessionmaker

from cloudsync.database import db_session
from cloudsync.events import EventBus
from cloudsync.events import EventType
from cloudsync.events import event_bus
from cloudsync.schemas.sync import WatchChangesResult
from cloudsync.services.pull_service import watch_changes

logger = logging.getLogger(__name__)

ChangesCallback = Callable[[WatchChangesResult], Awaitable[None]]


@dataclass
class Subscription:
    workspace_id: str
    callback: ChangesCallback
    cursor: int = 0
    limit: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    active: bool = True

    def advance(self, version: int) -> None:
        """Move the cursor forward to *version* (never backwards)."""

        if version > self.cursor:
            self.cursor = version


class SubscriptionRelay:
    """Registry of live subscriptions fed by ``SYNC_CHANGES_COMMITTED`` events."""

    def __init__(self, bus: EventBus = event_bus, session_factory: Optional[sessionmaker] = None):
        self._bus = bus
        self._session_factory = session_factory
        self._subscriptions: Dict[str, Dict[str, Subscription]] = {}
        self._listening = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        workspace_id: str,
        callback: ChangesCallback,
        cursor: int = 0,
        limit: Optional[int] = None,
    ) -> Subscription:
        subscription = Subscription(workspace_id=workspace_id, callback=callback, cursor=cursor, limit=limit)
        self._subscriptions.setdefault(workspace_id, {})[subscription.id] = subscription
        self._ensure_listening()
        logger.debug(f"Subscription {subscription.id} opened for {workspace_id} at cursor {cursor}")

        await self._evaluate(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        workspace_subs = self._subscriptions.get(subscription.workspace_id)
        if workspace_subs is not None:
            workspace_subs.pop(subscription.id, None)
            if not workspace_subs:
                del self._subscriptions[subscription.workspace_id]

        if not self._subscriptions and self._listening:
            self._bus.unsubscribe(EventType.SYNC_CHANGES_COMMITTED, self._on_changes_committed)
            self._listening = False
        logger.debug(f"Subscription {subscription.id} closed")

    async def refresh(self, subscription: Subscription) -> None:
        """Re-run the watch query for *subscription* at its current cursor."""

        await self._evaluate(subscription)

    def subscription_count(self, workspace_id: Optional[str] = None) -> int:
        if workspace_id is not None:
            return len(self._subscriptions.get(workspace_id, {}))
        return sum(len(subs) for subs in self._subscriptions.values())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_listening(self) -> None:
        if not self._listening:
            self._bus.subscribe(EventType.SYNC_CHANGES_COMMITTED, self._on_changes_committed)
            self._listening = True

    async def _on_changes_committed(self, data: Dict[str, Any]) -> None:
        workspace_id = data.get("workspace_id")
        version = data.get("server_version", 0)

        for subscription in list(self._subscriptions.get(workspace_id, {}).values()):
            if version > subscription.cursor:
                await self._evaluate(subscription)

    async def _evaluate(self, subscription: Subscription) -> None:
        if not subscription.active:
            return

        with db_session(self._session_factory) as db:
            result = watch_changes(db, subscription.workspace_id, subscription.cursor, subscription.limit)

        if not result.changes:
            return

        try:
            await subscription.callback(result)
        except Exception:
            logger.exception(f"Subscriber {subscription.id} failed to handle changes up to v{result.latest_version}")


# Global relay instance
subscription_relay = SubscriptionRelay()


__all__ = ["Subscription", "SubscriptionRelay", "subscription_relay"]
