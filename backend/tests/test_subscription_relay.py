"""Live delivery of committed changes to subscribers."""

import pytest

from cloudsync.events import EventBus
from cloudsync.events import EventType
from cloudsync.services.push_service import push_changes
from cloudsync.services.subscription_relay import SubscriptionRelay

WS = "ws-1"


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def relay(bus, test_session_factory):
    return SubscriptionRelay(bus=bus, session_factory=test_session_factory)


class Recorder:
    def __init__(self):
        self.batches = []

    async def __call__(self, result):
        self.batches.append(result)

    @property
    def versions(self):
        return [[c.server_version for c in batch.changes] for batch in self.batches]


async def _commit(bus, db, ops, workspace_id=WS):
    resp = push_changes(db, workspace_id, ops)
    await bus.publish(
        EventType.SYNC_CHANGES_COMMITTED,
        {"workspace_id": workspace_id, "server_version": resp.server_version},
    )
    return resp


@pytest.mark.asyncio
async def test_subscribe_delivers_backlog_immediately(relay, db_session, make_op):
    push_changes(db_session, WS, [make_op("a", pk="t1"), make_op("b", pk="t2")])
    recorder = Recorder()

    await relay.subscribe(WS, recorder, cursor=0)

    assert recorder.versions == [[1, 2]]
    assert recorder.batches[0].latest_version == 2


@pytest.mark.asyncio
async def test_empty_results_are_not_delivered(relay):
    recorder = Recorder()
    await relay.subscribe(WS, recorder, cursor=0)
    assert recorder.batches == []


@pytest.mark.asyncio
async def test_commit_event_triggers_delivery(relay, bus, db_session, make_op):
    recorder = Recorder()
    subscription = await relay.subscribe(WS, recorder, cursor=0)

    await _commit(bus, db_session, [make_op("a", pk="t1")])
    assert recorder.versions == [[1]]

    subscription.advance(1)
    await _commit(bus, db_session, [make_op("b", pk="t2")])
    assert recorder.versions == [[1], [2]]


@pytest.mark.asyncio
async def test_relay_never_advances_cursor_itself(relay, bus, db_session, make_op):
    recorder = Recorder()
    subscription = await relay.subscribe(WS, recorder, cursor=0)

    await _commit(bus, db_session, [make_op("a", pk="t1")])
    await _commit(bus, db_session, [make_op("b", pk="t2")])

    assert subscription.cursor == 0
    # Without an advance the second evaluation re-reads from the start
    assert recorder.versions == [[1], [1, 2]]


@pytest.mark.asyncio
async def test_advance_and_refresh_pages_through_backlog(relay, db_session, make_op):
    push_changes(db_session, WS, [make_op(f"op-{i}", pk=f"t{i}") for i in range(5)])
    recorder = Recorder()

    subscription = await relay.subscribe(WS, recorder, cursor=0, limit=2)
    subscription.advance(recorder.batches[-1].latest_version)
    await relay.refresh(subscription)
    subscription.advance(recorder.batches[-1].latest_version)
    await relay.refresh(subscription)
    subscription.advance(recorder.batches[-1].latest_version)
    await relay.refresh(subscription)

    assert recorder.versions == [[1, 2], [3, 4], [5]]
    assert subscription.cursor == 5


def test_advance_never_moves_backwards():
    from cloudsync.services.subscription_relay import Subscription

    async def noop(result):
        return None

    subscription = Subscription(workspace_id=WS, callback=noop, cursor=7)
    subscription.advance(3)
    assert subscription.cursor == 7


@pytest.mark.asyncio
async def test_events_for_other_workspaces_or_old_versions_are_ignored(relay, bus, db_session, make_op):
    push_changes(db_session, WS, [make_op("a", pk="t1")])
    recorder = Recorder()
    subscription = await relay.subscribe(WS, recorder, cursor=0)
    subscription.advance(1)
    recorder.batches.clear()

    await _commit(bus, db_session, [make_op("b", pk="t1")], workspace_id="ws-2")
    await bus.publish(EventType.SYNC_CHANGES_COMMITTED, {"workspace_id": WS, "server_version": 1})

    assert recorder.batches == []


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_affect_others(relay, bus, db_session, make_op):
    async def broken(result):
        raise RuntimeError("subscriber went away")

    healthy = Recorder()
    await relay.subscribe(WS, broken, cursor=0)
    await relay.subscribe(WS, healthy, cursor=0)

    await _commit(bus, db_session, [make_op("a", pk="t1")])

    assert healthy.versions == [[1]]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(relay, bus, db_session, make_op):
    recorder = Recorder()
    subscription = await relay.subscribe(WS, recorder, cursor=0)
    assert relay.subscription_count(WS) == 1

    relay.unsubscribe(subscription)
    await _commit(bus, db_session, [make_op("a", pk="t1")])

    assert recorder.batches == []
    assert relay.subscription_count() == 0
    assert bus.subscriber_count(EventType.SYNC_CHANGES_COMMITTED) == 0
