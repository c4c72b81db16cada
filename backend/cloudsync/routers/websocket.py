"""WebSocket routing module.

``/api/sync/watch`` streams change-log deltas for one workspace.  The server
pushes ``{"type": "changes", ...}`` frames; the client answers with
``{"type": "ack", "cursor": n}`` once it has applied a batch, which moves the
subscription forward and triggers the next evaluation.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Optional

from fastapi import APIRouter
from fastapi import WebSocket
from fastapi import WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from cloudsync.constants import WATCH_ENDPOINT
from cloudsync.constants import WS_CLOSE_FORBIDDEN
from cloudsync.constants import WS_CLOSE_UNAUTHORIZED
from cloudsync.database import get_session_factory
from cloudsync.dependencies.auth import get_membership_checker
from cloudsync.dependencies.auth import validate_ws_token
from cloudsync.schemas.sync import WatchAckMessage
from cloudsync.schemas.sync import WatchChangesMessage
from cloudsync.schemas.sync import WatchChangesResult
from cloudsync.schemas.sync import WatchErrorMessage
from cloudsync.services.subscription_relay import subscription_relay

router = APIRouter()
logger = logging.getLogger(__name__)


def get_websocket_session(session_factory: Optional[sessionmaker] = None) -> Session:
    """Create a new database session for WebSocket handlers.

    The caller must close it.
    """
    factory = session_factory or get_session_factory()
    return factory()


@router.websocket(WATCH_ENDPOINT)
async def watch_endpoint(
    websocket: WebSocket,
    workspace_id: str,
    cursor: int = 0,
    limit: Optional[int] = None,
    token: Optional[str] = None,
):
    """Live subscription to a workspace's change log."""
    client_id = str(uuid.uuid4())

    # Authenticate BEFORE accepting the handshake so the client sees a clean
    # 4401 / 4403 close code.
    user = validate_ws_token(token)
    if user is None:
        logger.info(f"Watch auth failed – closing connection for client {client_id}")
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized")
        return

    db = get_websocket_session()
    try:
        allowed = get_membership_checker().is_member(db, user, workspace_id)
    finally:
        db.close()

    if not allowed:
        logger.info(f"User {user.user_id} is not a member of {workspace_id} – closing watch {client_id}")
        await websocket.close(code=WS_CLOSE_FORBIDDEN, reason="Forbidden")
        return

    await websocket.accept()
    logger.debug(f"Watch {client_id} opened for {workspace_id} at cursor {cursor}")

    async def deliver(result: WatchChangesResult) -> None:
        message = WatchChangesMessage(workspace_id=workspace_id, **result.model_dump())
        await websocket.send_json(message.model_dump(mode="json"))

    subscription = None
    try:
        subscription = await subscription_relay.subscribe(workspace_id, deliver, cursor=max(cursor, 0), limit=limit)

        while True:
            raw_data = await websocket.receive_text()
            try:
                ack = WatchAckMessage.model_validate(json.loads(raw_data))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Invalid frame from watch client {client_id}: {e}")
                await websocket.send_json(WatchErrorMessage(error="Expected {\"type\": \"ack\", \"cursor\": n}").model_dump())
                continue

            subscription.advance(ack.cursor)
            await subscription_relay.refresh(subscription)

    except WebSocketDisconnect:
        logger.info(f"Watch connection closed for client {client_id}")
    except Exception as e:
        logger.error(f"Watch error for client {client_id}: {str(e)}")
        try:
            await websocket.send_json(WatchErrorMessage(error="Internal server error").model_dump())
        except Exception:
            logger.debug(f"Could not report error to watch client {client_id}")
    finally:
        if subscription is not None:
            subscription_relay.unsubscribe(subscription)
