"""Sync API router.

Push, pull, device heartbeat, server version and manual GC endpoints.  Every
handler authenticates the caller and checks workspace membership before it
touches the sync tables.
"""

import asyncio
import logging

from fastapi import APIRouter
from fastapi import Depends
from fastapi import HTTPException
from fastapi import Query
from fastapi import Response
from fastapi import status
from sqlalchemy.orm import Session

from cloudsync.auth.strategy import AuthenticatedUser
from cloudsync.config import get_settings
from cloudsync.database import get_db
from cloudsync.dependencies.auth import get_current_user
from cloudsync.dependencies.auth import require_workspace_member
from cloudsync.events import EventType
from cloudsync.events.publisher import publish_event_fire_and_forget
from cloudsync.exceptions import SyncError
from cloudsync.exceptions import SyncValidationError
from cloudsync.schemas.sync import CursorUpdateRequest
from cloudsync.schemas.sync import GcRequest
from cloudsync.schemas.sync import GcResponse
from cloudsync.schemas.sync import PullRequest
from cloudsync.schemas.sync import PullResponse
from cloudsync.schemas.sync import PushRequest
from cloudsync.schemas.sync import PushResponse
from cloudsync.schemas.sync import ServerVersionResponse
from cloudsync.services.device_cursors import update_device_cursor
from cloudsync.services.pull_service import get_server_version
from cloudsync.services.pull_service import pull_changes
from cloudsync.services.push_service import push_changes
from cloudsync.services.retention_gc import gc_change_log
from cloudsync.services.retention_gc import gc_tombstones

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sync"])


def _error_response(status_code: int, exc: SyncError) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": exc.message, "code": exc.code.value})


# ---------------------------------------------------------------------------
# Push / pull
# ---------------------------------------------------------------------------


def _push_blocking(db: Session, current_user: AuthenticatedUser, request: PushRequest) -> PushResponse:
    require_workspace_member(db, current_user, request.workspace_id)

    try:
        return push_changes(db, request.workspace_id, request.ops)
    except SyncValidationError as exc:
        raise _error_response(status.HTTP_400_BAD_REQUEST, exc)
    except SyncError as exc:
        db.rollback()
        logger.error(f"Push to {request.workspace_id} failed: {exc.message}")
        raise _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


@router.post("/push", response_model=PushResponse)
async def push(
    request: PushRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Apply a batch of operations; see :func:`push_changes`.

    The database work runs in a worker thread and live subscribers are
    notified in the background, so the response never waits on a watcher.
    """

    response = await asyncio.to_thread(_push_blocking, db, current_user, request)

    if response.server_version > 0:
        publish_event_fire_and_forget(
            EventType.SYNC_CHANGES_COMMITTED,
            {"workspace_id": request.workspace_id, "server_version": response.server_version},
        )
    return response


@router.post("/pull", response_model=PullResponse)
def pull(
    request: PullRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    require_workspace_member(db, current_user, request.workspace_id)
    return pull_changes(db, request.workspace_id, request.cursor, request.limit, request.tables)


@router.get("/server-version", response_model=ServerVersionResponse)
def server_version(
    workspace_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    require_workspace_member(db, current_user, workspace_id)
    return ServerVersionResponse(workspace_id=workspace_id, server_version=get_server_version(db, workspace_id))


# ---------------------------------------------------------------------------
# Device heartbeat
# ---------------------------------------------------------------------------


def _update_cursor_blocking(db: Session, current_user: AuthenticatedUser, request: CursorUpdateRequest) -> None:
    require_workspace_member(db, current_user, request.workspace_id)
    update_device_cursor(db, request.workspace_id, request.device_id, request.last_seen_version)
    db.commit()


@router.post("/cursor", status_code=status.HTTP_204_NO_CONTENT)
async def update_cursor(
    request: CursorUpdateRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    await asyncio.to_thread(_update_cursor_blocking, db, current_user, request)

    publish_event_fire_and_forget(
        EventType.DEVICE_CURSOR_UPDATED,
        {
            "workspace_id": request.workspace_id,
            "device_id": request.device_id,
            "last_seen_version": request.last_seen_version,
        },
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Manual GC (one bounded pass per call)
# ---------------------------------------------------------------------------


def _gc_args(request: GcRequest) -> tuple:
    settings = get_settings()
    retention = request.retention_seconds if request.retention_seconds is not None else settings.default_retention_seconds
    return retention, request.batch_size or settings.default_gc_batch_size, request.cursor or 0


@router.post("/gc/tombstones", response_model=GcResponse)
def run_gc_tombstones(
    request: GcRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    require_workspace_member(db, current_user, request.workspace_id)

    retention, batch_size, cursor = _gc_args(request)
    result = gc_tombstones(db, request.workspace_id, retention, batch_size, cursor)
    db.commit()
    return GcResponse.model_validate(result)


@router.post("/gc/change-log", response_model=GcResponse)
def run_gc_change_log(
    request: GcRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    require_workspace_member(db, current_user, request.workspace_id)

    retention, batch_size, cursor = _gc_args(request)
    result = gc_change_log(db, request.workspace_id, retention, batch_size, cursor)
    db.commit()
    return GcResponse.model_validate(result)
