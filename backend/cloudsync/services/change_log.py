"""Append-only change log.

Entries are written by the push handler only and never updated afterwards;
retention GC is the only code path that deletes them.
"""

import logging
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cloudsync.models.models import ChangeLogEntry
from cloudsync.utils.time import now_sec

logger = logging.getLogger(__name__)


def find_entries_by_op_ids(db: Session, op_ids: Iterable[str]) -> Dict[str, ChangeLogEntry]:
    """Return already recorded entries keyed by ``op_id`` (one query)."""

    unique_ids = list(dict.fromkeys(op_ids))
    if not unique_ids:
        return {}

    rows = db.execute(select(ChangeLogEntry).where(ChangeLogEntry.op_id.in_(unique_ids))).scalars().all()
    return {row.op_id: row for row in rows}


def append_entry(
    db: Session,
    *,
    workspace_id: str,
    server_version: int,
    table_name: str,
    pk: str,
    op: str,
    payload: Optional[dict],
    clock: int,
    hlc: str,
    device_id: str,
    op_id: str,
) -> ChangeLogEntry:
    """Insert one change-log row and flush so constraint errors surface here."""

    entry = ChangeLogEntry(
        workspace_id=workspace_id,
        server_version=server_version,
        table_name=table_name,
        pk=pk,
        op=op,
        payload=payload,
        clock=clock,
        hlc=hlc,
        device_id=device_id,
        op_id=op_id,
        created_at=now_sec(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_entries_after(db: Session, workspace_id: str, cursor: int, limit: int) -> List[ChangeLogEntry]:
    """Entries with ``server_version > cursor`` in ascending version order."""

    stmt = (
        select(ChangeLogEntry)
        .where(ChangeLogEntry.workspace_id == workspace_id, ChangeLogEntry.server_version > cursor)
        .order_by(ChangeLogEntry.server_version.asc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


__all__ = ["find_entries_by_op_ids", "append_entry", "list_entries_after"]
