"""Read side of the change log: cursor pagination and the watch query."""

import logging
from typing import Iterable
from typing import Optional

from sqlalchemy.orm import Session

from cloudsync.config import get_settings
from cloudsync.metrics import sync_pull_requests_total
from cloudsync.schemas.sync import ChangeOut
from cloudsync.schemas.sync import PullResponse
from cloudsync.schemas.sync import WatchChangesResult
from cloudsync.services.change_log import list_entries_after
from cloudsync.services.version_allocator import get_server_version

logger = logging.getLogger(__name__)


def clamp_limit(limit: int, maximum: int) -> int:
    return max(1, min(limit, maximum))


def pull_changes(
    db: Session,
    workspace_id: str,
    cursor: int,
    limit: int,
    tables: Optional[Iterable[str]] = None,
) -> PullResponse:
    """Return one page of changes after *cursor*.

    The table filter applies after the page is fetched, so ``next_cursor``
    always reflects the last *unfiltered* row: a client filtering tables
    still advances past entries it did not ask for.
    """

    page_size = clamp_limit(limit, get_settings().max_pull_limit)
    rows = list_entries_after(db, workspace_id, cursor, page_size + 1)

    has_more = len(rows) > page_size
    page = rows[:page_size]
    next_cursor = page[-1].server_version if page else cursor

    if tables is not None:
        wanted = set(tables)
        page = [row for row in page if row.table_name in wanted]

    sync_pull_requests_total.inc()
    logger.debug(f"Pull {workspace_id} after {cursor}: {len(page)} changes, next={next_cursor}, more={has_more}")
    return PullResponse(
        changes=[ChangeOut.from_entry(row) for row in page],
        next_cursor=next_cursor,
        has_more=has_more,
    )


def watch_changes(db: Session, workspace_id: str, cursor: int, limit: Optional[int] = None) -> WatchChangesResult:
    """Up to *limit* changes after *cursor* plus the latest version returned."""

    settings = get_settings()
    page_size = clamp_limit(limit or settings.watch_default_limit, settings.max_pull_limit)
    rows = list_entries_after(db, workspace_id, cursor, page_size)
    latest = rows[-1].server_version if rows else cursor
    return WatchChangesResult(changes=[ChangeOut.from_entry(row) for row in rows], latest_version=latest)


__all__ = ["pull_changes", "watch_changes", "get_server_version", "clamp_limit"]
