"""Tests for per-workspace server version allocation."""

import pytest

from cloudsync.exceptions import VersionAllocationError
from cloudsync.models.models import VersionCounter
from cloudsync.services import version_allocator
from cloudsync.services.version_allocator import allocate_server_versions
from cloudsync.services.version_allocator import get_server_version


def test_first_allocation_starts_at_one(db_session):
    start = allocate_server_versions(db_session, "ws-a", 3)
    db_session.commit()

    assert start == 1
    counter = db_session.query(VersionCounter).filter_by(workspace_id="ws-a").one()
    assert counter.value == 3


def test_ranges_are_contiguous_and_disjoint(db_session):
    first = allocate_server_versions(db_session, "ws-a", 2)
    second = allocate_server_versions(db_session, "ws-a", 4)
    third = allocate_server_versions(db_session, "ws-a", 1)

    assert (first, second, third) == (1, 3, 7)
    assert get_server_version(db_session, "ws-a") == 7


def test_non_positive_count_returns_current_without_mutation(db_session):
    assert allocate_server_versions(db_session, "ws-a", 0) == 0
    assert db_session.query(VersionCounter).count() == 0

    allocate_server_versions(db_session, "ws-a", 5)
    assert allocate_server_versions(db_session, "ws-a", -2) == 5
    assert get_server_version(db_session, "ws-a") == 5


def test_workspaces_have_independent_counters(db_session):
    allocate_server_versions(db_session, "ws-a", 10)

    assert allocate_server_versions(db_session, "ws-b", 1) == 1
    assert get_server_version(db_session, "ws-a") == 10
    assert get_server_version(db_session, "ws-b") == 1


def test_server_version_defaults_to_zero(db_session):
    assert get_server_version(db_session, "unknown") == 0


def test_lost_cas_races_raise_after_bounded_retries(db_session, monkeypatch):
    allocate_server_versions(db_session, "ws-a", 5)

    # Simulate a writer that always advances the counter between our read
    # and our compare-and-set.
    monkeypatch.setattr(version_allocator, "_read_counter", lambda db, workspace_id: 2)

    with pytest.raises(VersionAllocationError):
        allocate_server_versions(db_session, "ws-a", 1)

    monkeypatch.undo()
    assert get_server_version(db_session, "ws-a") == 5
