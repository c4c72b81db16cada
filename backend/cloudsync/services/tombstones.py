"""Tombstone bookkeeping for deletes.

A tombstone remembers the clock of the most recent delete for a key so that a
stale put arriving later cannot resurrect the record.  Tombstones are only
overwritten by a delete with a strictly greater clock, never by a put.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cloudsync.models.models import Tombstone
from cloudsync.utils.time import now_sec

logger = logging.getLogger(__name__)


def get_tombstone(db: Session, workspace_id: str, table_name: str, pk: str) -> Optional[Tombstone]:
    stmt = select(Tombstone).where(
        Tombstone.workspace_id == workspace_id,
        Tombstone.table_name == table_name,
        Tombstone.pk == pk,
    )
    return db.execute(stmt).scalar_one_or_none()


def find_blocking_tombstone(db: Session, workspace_id: str, table_name: str, pk: str, clock: int) -> Optional[Tombstone]:
    """Return the tombstone that outranks a put at *clock*, if any."""

    tombstone = get_tombstone(db, workspace_id, table_name, pk)
    if tombstone is not None and tombstone.clock >= clock:
        return tombstone
    return None


def upsert_tombstone(
    db: Session,
    workspace_id: str,
    table_name: str,
    pk: str,
    clock: int,
    server_version: int,
    deleted_at: int,
) -> Optional[Tombstone]:
    """Record a delete at *clock*.

    Returns the stored tombstone, or ``None`` when an existing one already
    carries an equal or greater clock (left untouched).
    """

    existing = get_tombstone(db, workspace_id, table_name, pk)
    if existing is not None:
        if existing.clock >= clock:
            logger.debug(f"Tombstone {table_name}/{pk} kept at clock {existing.clock} (incoming {clock})")
            return None
        existing.deleted_at = deleted_at
        existing.clock = clock
        existing.server_version = server_version
        db.flush()
        return existing

    tombstone = Tombstone(
        workspace_id=workspace_id,
        table_name=table_name,
        pk=pk,
        deleted_at=deleted_at,
        clock=clock,
        server_version=server_version,
        created_at=now_sec(),
    )
    db.add(tombstone)
    db.flush()
    return tombstone


__all__ = ["get_tombstone", "find_blocking_tombstone", "upsert_tombstone"]
