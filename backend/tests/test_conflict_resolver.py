"""Last-writer-wins resolution against the synced tables."""

import pytest

from cloudsync.exceptions import SyncValidationError
from cloudsync.models.enums import ApplyOutcome
from cloudsync.models.enums import SyncedTable
from cloudsync.models.synced import FileMeta
from cloudsync.models.synced import Message
from cloudsync.models.synced import Thread
from cloudsync.services.conflict_resolver import apply_operation
from cloudsync.services.conflict_resolver import lww_wins
from cloudsync.services.conflict_resolver import sanitize_payload
from cloudsync.services.tombstones import upsert_tombstone

WS = "ws-1"


def _thread(db, pk="t1", workspace_id=WS):
    return db.query(Thread).filter_by(workspace_id=workspace_id, id=pk).one_or_none()


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def test_lww_order():
    assert lww_wins(2, "1:0:a", 1, "9:9:z")
    assert not lww_wins(1, "9:9:z", 2, "1:0:a")
    assert lww_wins(1, "1:0:b", 1, "1:0:a")
    assert not lww_wins(1, "1:0:a", 1, "1:0:b")
    assert not lww_wins(1, "1:0:a", 1, "1:0:a")


def test_sanitize_strips_identity_and_unknown_keys():
    values = sanitize_payload(
        SyncedTable.THREADS,
        {"title": "x", "workspace_id": "other", "_id": "abc", "row_id": 9, "id": "t9", "bogus": 1},
    )
    assert values == {"title": "x"}


def test_sanitize_maps_column_names_to_attributes():
    values = sanitize_payload(SyncedTable.MESSAGES, {"index": 4, "role": "user"})
    assert values == {"index_": 4, "role": "user"}


def test_sanitize_strips_hash_for_file_meta():
    values = sanitize_payload(SyncedTable.FILE_META, {"hash": "sha256:00", "name": "a.png"})
    assert values == {"name": "a.png"}


def test_sanitize_rejects_non_object_payload():
    with pytest.raises(SyncValidationError):
        sanitize_payload(SyncedTable.THREADS, ["not", "an", "object"])


def test_sanitize_rejects_non_boolean_deleted():
    with pytest.raises(SyncValidationError):
        sanitize_payload(SyncedTable.THREADS, {"deleted": "yes"})


def test_sanitize_drops_non_numeric_timestamps():
    values = sanitize_payload(SyncedTable.THREADS, {"created_at": "yesterday", "updated_at": 12.7})
    assert values == {"updated_at": 12}


@pytest.mark.parametrize(
    "payload",
    [
        {"pinned": "yes"},
        {"title": 42},
        {"anchor_index": "3"},
        {"anchor_index": 1.5},
        {"anchor_index": float("inf")},
        {"pinned": None},
        {"deleted_at": float("nan")},
    ],
)
def test_sanitize_rejects_values_of_the_wrong_type(payload):
    with pytest.raises(SyncValidationError):
        sanitize_payload(SyncedTable.THREADS, payload)


def test_sanitize_accepts_integral_floats_for_integer_columns():
    values = sanitize_payload(SyncedTable.THREADS, {"anchor_index": 3.0, "title": None, "data_unknown": object()})
    assert values == {"anchor_index": 3, "title": None}


# ---------------------------------------------------------------------------
# Puts
# ---------------------------------------------------------------------------


def test_put_inserts_new_row(db_session, make_op):
    op = make_op("a", payload={"title": "x", "pinned": True, "created_at": 100}, clock=1, hlc="1:0:d1")

    assert apply_operation(db_session, WS, SyncedTable.THREADS, op) == ApplyOutcome.INSERTED

    row = _thread(db_session)
    assert row.title == "x"
    assert row.pinned is True
    assert (row.clock, row.hlc) == (1, "1:0:d1")
    assert row.created_at == 100
    assert row.deleted is False


def test_higher_clock_wins(db_session, make_op):
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", payload={"title": "old"}, clock=1))
    outcome = apply_operation(db_session, WS, SyncedTable.THREADS, make_op("b", payload={"title": "new"}, clock=2))

    assert outcome == ApplyOutcome.UPDATED
    assert _thread(db_session).title == "new"


def test_lower_clock_is_a_silent_no_op(db_session, make_op):
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", payload={"title": "newer"}, clock=5))
    outcome = apply_operation(db_session, WS, SyncedTable.THREADS, make_op("b", payload={"title": "stale"}, clock=4))

    assert outcome == ApplyOutcome.SKIPPED
    row = _thread(db_session)
    assert row.title == "newer"
    assert row.clock == 5


def test_equal_clock_tie_broken_by_hlc(db_session, make_op):
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", payload={"title": "x"}, clock=1, hlc="1:0:d1"))
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("b", payload={"title": "y"}, clock=1, hlc="1:0:d2"))

    assert _thread(db_session).title == "y"

    # The smaller hlc loses even when it arrives last
    outcome = apply_operation(
        db_session, WS, SyncedTable.THREADS, make_op("c", payload={"title": "z"}, clock=1, hlc="1:0:d0")
    )
    assert outcome == ApplyOutcome.SKIPPED
    assert _thread(db_session).title == "y"


def test_arrival_order_does_not_change_outcome(db_session, make_op):
    first = make_op("a", payload={"title": "from d1"}, clock=3, hlc="3:0:d1")
    second = make_op("b", payload={"title": "from d2"}, clock=3, hlc="3:0:d2")

    apply_operation(db_session, "ws-x", SyncedTable.THREADS, first)
    apply_operation(db_session, "ws-x", SyncedTable.THREADS, second)
    apply_operation(db_session, "ws-y", SyncedTable.THREADS, second)
    apply_operation(db_session, "ws-y", SyncedTable.THREADS, first)

    assert _thread(db_session, workspace_id="ws-x").title == _thread(db_session, workspace_id="ws-y").title == "from d2"


def test_put_patches_only_given_fields(db_session, make_op):
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", payload={"title": "x", "project_id": "p1"}))
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("b", payload={"title": "y"}, clock=2))

    row = _thread(db_session)
    assert row.title == "y"
    assert row.project_id == "p1"


def test_message_index_column(db_session, make_op):
    op = make_op("m", pk="m1", table_name="messages", payload={"thread_id": "t1", "index": 2, "data": {"text": "hi"}})
    apply_operation(db_session, WS, SyncedTable.MESSAGES, op)

    row = db_session.query(Message).filter_by(workspace_id=WS, id="m1").one()
    assert row.index_ == 2
    assert row.data == {"text": "hi"}


def test_file_meta_keyed_by_hash(db_session, make_op):
    op = make_op("f", pk="sha256:abc", table_name="file_meta", payload={"name": "a.png", "size_bytes": 10})
    apply_operation(db_session, WS, SyncedTable.FILE_META, op)

    row = db_session.query(FileMeta).filter_by(workspace_id=WS, hash="sha256:abc").one()
    assert row.name == "a.png"
    assert row.ref_count == 0


# ---------------------------------------------------------------------------
# Deletes & anti-resurrection
# ---------------------------------------------------------------------------


def test_delete_marks_row_deleted(db_session, make_op):
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", payload={"title": "x"}))
    outcome = apply_operation(
        db_session, WS, SyncedTable.THREADS, make_op("b", operation="delete", payload={"deleted_at": 1234}, clock=2)
    )

    assert outcome == ApplyOutcome.DELETED
    row = _thread(db_session)
    assert row.deleted is True
    assert row.deleted_at == 1234
    assert row.clock == 2


def test_delete_of_missing_or_deleted_row_is_a_no_op(db_session, make_op):
    assert (
        apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", operation="delete", clock=1))
        == ApplyOutcome.SKIPPED
    )
    assert _thread(db_session) is None

    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("b", payload={"title": "x"}, clock=1))
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("c", operation="delete", clock=2))
    assert (
        apply_operation(db_session, WS, SyncedTable.THREADS, make_op("d", operation="delete", clock=3))
        == ApplyOutcome.SKIPPED
    )


def test_tombstone_blocks_stale_put(db_session, make_op):
    upsert_tombstone(db_session, WS, "threads", "t1", clock=2, server_version=3, deleted_at=1000)

    stale = make_op("a", payload={"title": "zombie"}, clock=2, hlc="2:0:zz")
    assert apply_operation(db_session, WS, SyncedTable.THREADS, stale) == ApplyOutcome.SKIPPED
    assert _thread(db_session) is None


def test_newer_put_after_delete_revives_row(db_session, make_op):
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("a", payload={"title": "x"}, clock=1))
    apply_operation(db_session, WS, SyncedTable.THREADS, make_op("b", operation="delete", clock=2))
    upsert_tombstone(db_session, WS, "threads", "t1", clock=2, server_version=2, deleted_at=1000)

    outcome = apply_operation(db_session, WS, SyncedTable.THREADS, make_op("c", payload={"title": "back"}, clock=3))

    assert outcome == ApplyOutcome.UPDATED
    row = _thread(db_session)
    assert row.deleted is False
    assert row.deleted_at is None
    assert row.title == "back"
