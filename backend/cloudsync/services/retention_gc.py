"""Retention GC for tombstones and change-log entries.

A row is collectable only when *both* hold:

* its ``server_version`` is below the minimum device cursor of the workspace,
  i.e. every known device has already pulled past it, and
* it is older than the retention window.

Without any reported device cursor the minimum is 0 and nothing is ever
collected.  Every pass is bounded by ``batch_size`` and returns a cursor so
work can resume later; see :mod:`cloudsync.services.gc_scheduler` for the
continuation logic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import replace
from typing import List
from typing import Optional

from sqlalchemy import desc
from sqlalchemy import select
from sqlalchemy.orm import Session

from cloudsync.config import get_settings
from cloudsync.metrics import sync_gc_purged_total
from cloudsync.models.models import ChangeLogEntry
from cloudsync.models.models import Tombstone
from cloudsync.services.device_cursors import get_min_device_cursor
from cloudsync.utils.time import now_sec

logger = logging.getLogger(__name__)


@dataclass
class GcPassResult:
    purged: int
    has_more: bool
    next_cursor: int


@dataclass
class GcTask:
    """Resumable GC work item for one workspace.

    Scheduled jobs carry this record between continuations instead of
    looping, so each run stays short.
    """

    workspace_id: str
    retention_seconds: Optional[int] = None
    batch_size: Optional[int] = None
    tombstone_cursor: int = 0
    changelog_cursor: int = 0
    continuation_count: int = 0

    def __post_init__(self) -> None:
        settings = get_settings()
        if self.retention_seconds is None:
            self.retention_seconds = settings.default_retention_seconds
        if self.batch_size is None:
            self.batch_size = settings.default_gc_batch_size

    @property
    def remaining_budget(self) -> int:
        return max(0, get_settings().max_gc_continuations - self.continuation_count)

    def continuation(self, result: "WorkspaceGcResult") -> "GcTask":
        """Next task in the chain, resuming at the cursors of *result*."""

        return replace(
            self,
            tombstone_cursor=result.next_tombstone_cursor,
            changelog_cursor=result.next_changelog_cursor,
            continuation_count=self.continuation_count + 1,
        )


@dataclass
class WorkspaceGcResult:
    workspace_id: str
    purged: int
    has_more: bool
    next_tombstone_cursor: int
    next_changelog_cursor: int


def _gc_pass(
    db: Session,
    model,
    age_field: str,
    workspace_id: str,
    retention_seconds: int,
    batch_size: int,
    cursor: int,
    min_cursor: int,
) -> GcPassResult:
    cutoff = now_sec() - retention_seconds

    stmt = (
        select(model)
        .where(
            model.workspace_id == workspace_id,
            model.server_version > cursor,
            model.server_version < min_cursor,
        )
        .order_by(model.server_version.asc())
        .limit(batch_size + 1)
    )
    candidates = db.execute(stmt).scalars().all()

    has_more = len(candidates) > batch_size
    batch = candidates[:batch_size]

    purged = 0
    next_cursor = cursor
    for row in batch:
        next_cursor = row.server_version
        if getattr(row, age_field) < cutoff:
            db.delete(row)
            purged += 1

    db.flush()
    return GcPassResult(purged=purged, has_more=has_more, next_cursor=next_cursor)


def gc_tombstones(
    db: Session,
    workspace_id: str,
    retention_seconds: int,
    batch_size: Optional[int] = None,
    cursor: int = 0,
) -> GcPassResult:
    """Delete expired tombstones below the minimum device cursor (one batch)."""

    batch_size = batch_size or get_settings().default_gc_batch_size
    min_cursor = get_min_device_cursor(db, workspace_id)
    result = _gc_pass(db, Tombstone, "deleted_at", workspace_id, retention_seconds, batch_size, cursor, min_cursor)
    sync_gc_purged_total.labels(collection="tombstones").inc(result.purged)
    return result


def gc_change_log(
    db: Session,
    workspace_id: str,
    retention_seconds: int,
    batch_size: Optional[int] = None,
    cursor: int = 0,
) -> GcPassResult:
    """Delete expired change-log rows below the minimum device cursor (one batch)."""

    batch_size = batch_size or get_settings().default_gc_batch_size
    min_cursor = get_min_device_cursor(db, workspace_id)
    result = _gc_pass(db, ChangeLogEntry, "created_at", workspace_id, retention_seconds, batch_size, cursor, min_cursor)
    sync_gc_purged_total.labels(collection="change_log").inc(result.purged)
    return result


def run_workspace_gc(db: Session, task: GcTask) -> WorkspaceGcResult:
    """Run one bounded pass over both collections for ``task.workspace_id``."""

    tombstones = gc_tombstones(db, task.workspace_id, task.retention_seconds, task.batch_size, task.tombstone_cursor)
    changes = gc_change_log(db, task.workspace_id, task.retention_seconds, task.batch_size, task.changelog_cursor)

    result = WorkspaceGcResult(
        workspace_id=task.workspace_id,
        purged=tombstones.purged + changes.purged,
        has_more=tombstones.has_more or changes.has_more,
        next_tombstone_cursor=tombstones.next_cursor,
        next_changelog_cursor=changes.next_cursor,
    )
    logger.info(
        f"GC {task.workspace_id} (continuation {task.continuation_count}): purged {result.purged}, "
        f"more={result.has_more}"
    )
    return result


def find_active_workspaces(db: Session) -> List[str]:
    """Workspaces with change-log activity inside the configured window.

    Only the most recent ``gc_activity_sample_size`` entries are inspected so
    the sweep never scans the whole log.
    """

    settings = get_settings()
    since = now_sec() - settings.gc_activity_window_seconds

    stmt = (
        select(ChangeLogEntry.workspace_id, ChangeLogEntry.created_at)
        .order_by(desc(ChangeLogEntry.id))
        .limit(settings.gc_activity_sample_size)
    )

    workspace_ids: List[str] = []
    for workspace_id, created_at in db.execute(stmt):
        if len(workspace_ids) >= settings.max_workspaces_per_gc_run:
            break
        if created_at >= since and workspace_id not in workspace_ids:
            workspace_ids.append(workspace_id)
    return workspace_ids


__all__ = [
    "GcPassResult",
    "GcTask",
    "WorkspaceGcResult",
    "gc_tombstones",
    "gc_change_log",
    "run_workspace_gc",
    "find_active_workspaces",
]
