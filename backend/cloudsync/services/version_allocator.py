"""Per-workspace server version allocation.

Every applied operation receives a unique, strictly increasing
``server_version`` within its workspace.  A push batch reserves one
contiguous range up front so versions follow the array order of the batch.

Concurrency: the counter row is the only serialization point between
concurrent pushes.  We advance it with a compare-and-set ``UPDATE`` and retry
a bounded number of times when another writer got there first.
"""

import logging

from sqlalchemy import select
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudsync.config import get_settings
from cloudsync.exceptions import VersionAllocationError
from cloudsync.models.models import VersionCounter

logger = logging.getLogger(__name__)


def _read_counter(db: Session, workspace_id: str) -> int | None:
    stmt = select(VersionCounter.value).where(VersionCounter.workspace_id == workspace_id)
    return db.execute(stmt).scalar_one_or_none()


def get_server_version(db: Session, workspace_id: str) -> int:
    """Return the highest version allocated for *workspace_id* (0 if none)."""

    return _read_counter(db, workspace_id) or 0


def allocate_server_versions(db: Session, workspace_id: str, count: int) -> int:
    """Reserve *count* contiguous versions and return the first one.

    The reserved range is ``[start, start + count - 1]`` and is persisted in
    the caller's transaction before this function returns.  ``count <= 0``
    returns the current high-water mark without touching the counter.

    Raises:
        VersionAllocationError: the compare-and-set kept losing races.
    """

    if count <= 0:
        return get_server_version(db, workspace_id)

    attempts = get_settings().version_cas_attempts
    for attempt in range(1, attempts + 1):
        current = _read_counter(db, workspace_id)

        if current is None:
            # First allocation for this workspace.  A concurrent creator makes
            # the insert fail on the unique constraint; re-read and CAS then.
            try:
                with db.begin_nested():
                    db.add(VersionCounter(workspace_id=workspace_id, value=count))
                return 1
            except IntegrityError:
                logger.debug(f"Version counter for {workspace_id} created concurrently (attempt {attempt})")
                continue

        result = db.execute(
            update(VersionCounter)
            .where(VersionCounter.workspace_id == workspace_id, VersionCounter.value == current)
            .values(value=current + count)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return current + 1

        logger.debug(f"Version counter CAS lost for {workspace_id} at {current} (attempt {attempt})")

    logger.error(f"Unable to allocate {count} versions for workspace {workspace_id} after {attempts} attempts")
    raise VersionAllocationError(f"Could not allocate server versions for workspace {workspace_id}")


__all__ = ["allocate_server_versions", "get_server_version"]
