from cloudsync.models.models import Tombstone
from cloudsync.services.tombstones import find_blocking_tombstone
from cloudsync.services.tombstones import get_tombstone
from cloudsync.services.tombstones import upsert_tombstone


def test_upsert_creates_tombstone(db_session):
    stored = upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=2, server_version=3, deleted_at=1000)

    assert stored is not None
    row = get_tombstone(db_session, "ws-1", "threads", "t1")
    assert (row.clock, row.server_version, row.deleted_at) == (2, 3, 1000)


def test_equal_or_lower_clock_leaves_tombstone_untouched(db_session):
    upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=5, server_version=3, deleted_at=1000)

    assert upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=5, server_version=4, deleted_at=2000) is None
    assert upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=4, server_version=5, deleted_at=3000) is None

    row = get_tombstone(db_session, "ws-1", "threads", "t1")
    assert (row.clock, row.server_version, row.deleted_at) == (5, 3, 1000)


def test_greater_clock_overwrites(db_session):
    upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=1, server_version=1, deleted_at=1000)
    upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=3, server_version=7, deleted_at=5000)

    assert db_session.query(Tombstone).count() == 1
    row = get_tombstone(db_session, "ws-1", "threads", "t1")
    assert (row.clock, row.server_version, row.deleted_at) == (3, 7, 5000)


def test_blocking_tombstone_lookup(db_session):
    upsert_tombstone(db_session, "ws-1", "threads", "t1", clock=4, server_version=1, deleted_at=1000)

    assert find_blocking_tombstone(db_session, "ws-1", "threads", "t1", clock=3) is not None
    assert find_blocking_tombstone(db_session, "ws-1", "threads", "t1", clock=4) is not None
    assert find_blocking_tombstone(db_session, "ws-1", "threads", "t1", clock=5) is None
    # Keys are scoped by workspace and table
    assert find_blocking_tombstone(db_session, "ws-2", "threads", "t1", clock=1) is None
    assert find_blocking_tombstone(db_session, "ws-1", "posts", "t1", clock=1) is None
