"""Push handler: apply a batch of client operations to a workspace.

The batch runs in the caller's transaction.  Each operation is wrapped in its
own SAVEPOINT so one bad op rolls back only itself while its siblings still
apply.  Results come back in input order, one per op.
"""

import json
import logging
import time
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from sqlalchemy.orm import Session

from cloudsync.config import get_settings
from cloudsync.exceptions import SyncValidationError
from cloudsync.metrics import sync_push_latency_seconds
from cloudsync.metrics import sync_push_ops_total
from cloudsync.models.enums import SyncedTable
from cloudsync.models.enums import SyncErrorCode
from cloudsync.models.enums import SyncOp
from cloudsync.schemas.sync import PushOpResult
from cloudsync.schemas.sync import PushResponse
from cloudsync.schemas.sync import SyncOpIn
from cloudsync.services.change_log import append_entry
from cloudsync.services.change_log import find_entries_by_op_ids
from cloudsync.services.conflict_resolver import apply_operation
from cloudsync.services.conflict_resolver import resolve_deleted_at
from cloudsync.services.tombstones import upsert_tombstone
from cloudsync.services.version_allocator import allocate_server_versions

logger = logging.getLogger(__name__)


def _payload_size(payload) -> int:
    return len(json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8"))


def validate_push_batch(ops: List[SyncOpIn]) -> None:
    """Whole-call limits, checked before anything touches the database.

    Raises:
        SyncValidationError: batch too large, an ``op_id`` too long or a
            payload above the byte cap.
    """

    settings = get_settings()

    if len(ops) > settings.max_push_ops:
        raise SyncValidationError(f"Too many operations in one push: {len(ops)} (max {settings.max_push_ops})")

    for op in ops:
        if len(op.op_id) > settings.max_op_id_length:
            raise SyncValidationError(f"op_id exceeds {settings.max_op_id_length} characters")
        if op.payload is not None and _payload_size(op.payload) > settings.max_payload_bytes:
            raise SyncValidationError(f"Payload of op {op.op_id} exceeds {settings.max_payload_bytes} bytes")


def _failure(op: SyncOpIn, code: SyncErrorCode, message: str) -> PushOpResult:
    return PushOpResult(op_id=op.op_id, success=False, error=message, error_code=code)


def _apply_one(db: Session, workspace_id: str, op: SyncOpIn, table: SyncedTable, server_version: int) -> PushOpResult:
    try:
        with db.begin_nested():
            outcome = apply_operation(db, workspace_id, table, op)
            append_entry(
                db,
                workspace_id=workspace_id,
                server_version=server_version,
                table_name=table.value,
                pk=op.pk,
                op=op.operation.value,
                payload=op.payload,
                clock=op.clock,
                hlc=op.hlc,
                device_id=op.device_id,
                op_id=op.op_id,
            )
            if op.operation == SyncOp.DELETE:
                upsert_tombstone(
                    db,
                    workspace_id,
                    table.value,
                    op.pk,
                    op.clock,
                    server_version,
                    resolve_deleted_at(op.payload),
                )
    except SyncValidationError as exc:
        logger.info(f"Rejected op {op.op_id} on {table.value}/{op.pk}: {exc.message}")
        sync_push_ops_total.labels(outcome="rejected").inc()
        return _failure(op, SyncErrorCode.VALIDATION_ERROR, exc.message)
    except Exception:
        logger.exception(f"Failed to apply op {op.op_id} on {table.value}/{op.pk} in workspace {workspace_id}")
        sync_push_ops_total.labels(outcome="error").inc()
        return _failure(op, SyncErrorCode.SERVER_ERROR, "Failed to apply operation")

    logger.debug(f"Applied op {op.op_id} as v{server_version} ({outcome.value})")
    sync_push_ops_total.labels(outcome=outcome.value).inc()
    return PushOpResult(op_id=op.op_id, success=True, server_version=server_version)


def push_changes(db: Session, workspace_id: str, ops: List[SyncOpIn]) -> PushResponse:
    """Apply *ops* to *workspace_id* and commit.

    Already recorded ``op_id`` values short-circuit with their original
    version.  New ops on allowlisted tables receive one contiguous version
    range in array order.  A repeated ``op_id`` inside the batch is applied
    once; later copies report the first copy's result.
    """

    validate_push_batch(ops)
    started = time.perf_counter()

    results: List[Optional[PushOpResult]] = [None] * len(ops)
    recorded = find_entries_by_op_ids(db, (op.op_id for op in ops))

    pending: List[Tuple[int, SyncOpIn, SyncedTable]] = []
    first_seen: Dict[str, int] = {}
    repeats: List[Tuple[int, int]] = []

    for index, op in enumerate(ops):
        if op.op_id in first_seen:
            repeats.append((index, first_seen[op.op_id]))
            continue
        first_seen[op.op_id] = index

        entry = recorded.get(op.op_id)
        if entry is not None:
            if entry.workspace_id != workspace_id:
                # op_id is deployment-wide; never reveal another workspace's version
                results[index] = _failure(op, SyncErrorCode.VALIDATION_ERROR, "op_id already used")
            else:
                sync_push_ops_total.labels(outcome="replayed").inc()
                results[index] = PushOpResult(op_id=op.op_id, success=True, server_version=entry.server_version)
            continue

        table = SyncedTable.parse(op.table_name)
        if table is None:
            sync_push_ops_total.labels(outcome="rejected").inc()
            results[index] = _failure(op, SyncErrorCode.VALIDATION_ERROR, f"Table '{op.table_name}' is not synced")
            continue

        pending.append((index, op, table))

    max_version = 0
    if pending:
        start_version = allocate_server_versions(db, workspace_id, len(pending))
        max_version = start_version + len(pending) - 1
        for offset, (index, op, table) in enumerate(pending):
            results[index] = _apply_one(db, workspace_id, op, table, start_version + offset)

    for index, first in repeats:
        results[index] = results[first].model_copy(update={"op_id": ops[index].op_id})

    db.commit()

    sync_push_latency_seconds.observe(time.perf_counter() - started)
    logger.info(
        f"Push to {workspace_id}: {len(ops)} ops, {len(pending)} new, "
        f"versions up to {max_version if pending else 'n/a'}"
    )
    return PushResponse(results=results, server_version=max_version)


__all__ = ["push_changes", "validate_push_batch"]
