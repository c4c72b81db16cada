"""Device cursor tracking.

Devices periodically report the highest server version they have applied.
The minimum over a workspace's devices bounds how far retention GC may go.
"""

import logging

from sqlalchemy import func
from sqlalchemy import select
from sqlalchemy.orm import Session

from cloudsync.models.models import DeviceCursor
from cloudsync.utils.time import now_sec

logger = logging.getLogger(__name__)


def update_device_cursor(db: Session, workspace_id: str, device_id: str, last_seen_version: int) -> DeviceCursor:
    """Upsert the cursor for ``(workspace_id, device_id)``.

    The latest report wins, even when it is lower than the stored value: a
    device that restored from backup or reset its replica really is behind.
    """

    stmt = select(DeviceCursor).where(DeviceCursor.workspace_id == workspace_id, DeviceCursor.device_id == device_id)
    cursor = db.execute(stmt).scalar_one_or_none()

    if cursor is None:
        cursor = DeviceCursor(
            workspace_id=workspace_id,
            device_id=device_id,
            last_seen_version=last_seen_version,
            updated_at=now_sec(),
        )
        db.add(cursor)
    else:
        if last_seen_version < cursor.last_seen_version:
            logger.info(
                f"Device {device_id} in {workspace_id} moved cursor back "
                f"from {cursor.last_seen_version} to {last_seen_version}"
            )
        cursor.last_seen_version = last_seen_version
        cursor.updated_at = now_sec()

    db.flush()
    return cursor


def get_min_device_cursor(db: Session, workspace_id: str) -> int:
    """Smallest reported cursor in the workspace, 0 when no device reported."""

    stmt = select(func.min(DeviceCursor.last_seen_version)).where(DeviceCursor.workspace_id == workspace_id)
    return db.execute(stmt).scalar() or 0


__all__ = ["update_device_cursor", "get_min_device_cursor"]
