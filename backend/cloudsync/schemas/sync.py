from typing import Any
from typing import List
from typing import Literal
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from cloudsync.models.enums import SyncErrorCode
from cloudsync.models.enums import SyncOp

# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


class SyncOpIn(BaseModel):
    """One client-side write.

    ``table_name`` and ``payload`` are deliberately loose: an unknown table or
    a malformed payload fails only its own op, not the whole batch.
    """

    op_id: str = Field(..., min_length=1, description="Client-generated idempotency key")
    table_name: str
    operation: SyncOp
    pk: str = Field(..., min_length=1)
    payload: Optional[Any] = None
    clock: int
    hlc: str
    device_id: str = Field(..., min_length=1)


class PushRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    ops: List[SyncOpIn]


class PushOpResult(BaseModel):
    op_id: str
    success: bool
    server_version: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[SyncErrorCode] = None


class PushResponse(BaseModel):
    results: List[PushOpResult]
    server_version: int = Field(..., description="Highest version allocated by this batch (0 if none)")


# ---------------------------------------------------------------------------
# Pull
# ---------------------------------------------------------------------------


class PullRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    cursor: int = Field(0, ge=0)
    limit: int = Field(100, ge=1)
    tables: Optional[List[str]] = None


class ChangeStamp(BaseModel):
    clock: int
    hlc: str
    device_id: str
    op_id: str


class ChangeOut(BaseModel):
    server_version: int
    table_name: str
    pk: str
    op: SyncOp
    payload: Optional[Any] = None
    stamp: ChangeStamp

    @classmethod
    def from_entry(cls, entry) -> "ChangeOut":
        return cls(
            server_version=entry.server_version,
            table_name=entry.table_name,
            pk=entry.pk,
            op=entry.op,
            payload=entry.payload,
            stamp=ChangeStamp(
                clock=entry.clock,
                hlc=entry.hlc,
                device_id=entry.device_id,
                op_id=entry.op_id,
            ),
        )


class PullResponse(BaseModel):
    changes: List[ChangeOut]
    next_cursor: int
    has_more: bool


class WatchChangesResult(BaseModel):
    changes: List[ChangeOut]
    latest_version: int


class WatchChangesMessage(WatchChangesResult):
    """Frame sent to ``/api/sync/watch`` subscribers."""

    type: Literal["changes"] = "changes"
    workspace_id: str


class WatchAckMessage(BaseModel):
    """Frame a watch subscriber sends after consuming a batch."""

    type: Literal["ack"]
    cursor: int = Field(..., ge=0)


# ---------------------------------------------------------------------------
# Cursor & server version
# ---------------------------------------------------------------------------


class CursorUpdateRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    device_id: str = Field(..., min_length=1)
    last_seen_version: int = Field(..., ge=0)


class ServerVersionResponse(BaseModel):
    workspace_id: str
    server_version: int


# ---------------------------------------------------------------------------
# Retention GC
# ---------------------------------------------------------------------------


class GcRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    retention_seconds: Optional[int] = Field(None, ge=0)
    batch_size: Optional[int] = Field(None, ge=1)
    cursor: Optional[int] = Field(None, ge=0)


class GcResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    purged: int
    has_more: bool
    next_cursor: int


class WatchErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error: str
