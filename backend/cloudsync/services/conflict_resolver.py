"""Last-writer-wins application of a single operation to its synced table.

The decision rule is a total order over ``(clock, hlc)``: an incoming put
replaces the stored state iff its clock is greater, or the clocks are equal
and its hlc string compares greater.  Losing writes are silent no-ops so the
same set of operations converges regardless of arrival order.
"""

import logging
import math
from numbers import Real
from typing import Any
from typing import Dict

from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import select
from sqlalchemy.orm import Session

from cloudsync.exceptions import SyncValidationError
from cloudsync.models.enums import ApplyOutcome
from cloudsync.models.enums import SyncedTable
from cloudsync.models.enums import SyncOp
from cloudsync.models.synced import model_for
from cloudsync.models.synced import writable_columns
from cloudsync.services.tombstones import find_blocking_tombstone
from cloudsync.utils.time import now_sec

logger = logging.getLogger(__name__)

# Identity keys clients sometimes echo back; never copied from a payload.
_STRIPPED_KEYS = frozenset({"workspace_id", "_id", "row_id"})

_TIMESTAMP_COLUMNS = frozenset({"created_at", "updated_at", "deleted_at"})


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _finite_timestamp(key: str, value: Any) -> int:
    # json accepts NaN / Infinity literals, int() does not
    if not math.isfinite(value):
        raise SyncValidationError(f"payload.{key} must be a finite number")
    return int(value)


def resolve_deleted_at(payload: Any) -> int:
    """``payload["deleted_at"]`` when numeric, otherwise the current time.

    Raises:
        SyncValidationError: ``deleted_at`` is NaN or infinite.
    """

    if isinstance(payload, dict) and _is_number(payload.get("deleted_at")):
        return _finite_timestamp("deleted_at", payload["deleted_at"])
    return now_sec()


def lww_wins(clock: int, hlc: str, current_clock: int, current_hlc: str) -> bool:
    """Return True when ``(clock, hlc)`` outranks the stored stamp."""

    if clock != current_clock:
        return clock > current_clock
    return hlc > (current_hlc or "")


def _check_column_value(key: str, column: Column, value: Any) -> Any:
    """Return *value* in the form *column* stores, or raise SyncValidationError."""

    if value is None:
        if not column.nullable:
            raise SyncValidationError(f"payload.{key} must not be null")
        return None

    column_type = column.type
    if isinstance(column_type, Boolean):
        if not isinstance(value, bool):
            raise SyncValidationError(f"payload.{key} must be a boolean")
    elif isinstance(column_type, Integer):
        if not _is_number(value) or not math.isfinite(value) or int(value) != value:
            raise SyncValidationError(f"payload.{key} must be an integer")
        return int(value)
    elif isinstance(column_type, String):
        if not isinstance(value, str):
            raise SyncValidationError(f"payload.{key} must be a string")
    return value


def sanitize_payload(table: SyncedTable, payload: Any) -> Dict[str, Any]:
    """Reduce *payload* to model attribute values the resolver may write.

    Values are checked against their column type so a bad field fails the
    op as a validation error instead of at flush time.

    Raises:
        SyncValidationError: the payload is not an object, or a known field
            has the wrong type, is null for a required column or is a
            non-finite number.
    """

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise SyncValidationError("payload must be a JSON object")

    table_columns = model_for(table).__table__.columns
    columns = writable_columns(table)
    values: Dict[str, Any] = {}
    for key, value in payload.items():
        if key in _STRIPPED_KEYS or key == table.pk_field:
            continue
        attr = columns.get(key)
        if attr is None:
            continue
        if key in _TIMESTAMP_COLUMNS:
            # Non-numeric client timestamps fall back to server time
            if value is not None and not _is_number(value):
                continue
            value = _finite_timestamp(key, value) if value is not None else None
        else:
            value = _check_column_value(key, table_columns[key], value)
        values[attr] = value
    return values


def _load_row(db: Session, workspace_id: str, table: SyncedTable, pk: str):
    model = model_for(table)
    pk_column = getattr(model, table.pk_field)
    stmt = select(model).where(model.workspace_id == workspace_id, pk_column == pk)
    return db.execute(stmt).scalar_one_or_none()


def _apply_delete(db: Session, row, op) -> ApplyOutcome:
    if op.payload is not None and not isinstance(op.payload, dict):
        raise SyncValidationError("payload must be a JSON object")

    deleted_at = resolve_deleted_at(op.payload)
    if row is None or row.deleted:
        return ApplyOutcome.SKIPPED

    row.deleted = True
    row.deleted_at = deleted_at
    row.updated_at = now_sec()
    row.clock = op.clock
    row.hlc = op.hlc
    db.flush()
    return ApplyOutcome.DELETED


def _apply_put(db: Session, workspace_id: str, table: SyncedTable, row, op) -> ApplyOutcome:
    values = sanitize_payload(table, op.payload)

    if find_blocking_tombstone(db, workspace_id, table.value, op.pk, op.clock) is not None:
        logger.debug(f"Put {op.op_id} on {table.value}/{op.pk} blocked by tombstone")
        return ApplyOutcome.SKIPPED

    now = now_sec()

    if row is None:
        model = model_for(table)
        record = model(
            workspace_id=workspace_id,
            deleted=False,
            deleted_at=None,
            clock=op.clock,
            hlc=op.hlc,
            created_at=now,
            updated_at=now,
        )
        setattr(record, table.pk_field, op.pk)
        for attr, value in values.items():
            if attr in ("created_at", "updated_at") and value is None:
                continue
            setattr(record, attr, value)
        if record.deleted and record.deleted_at is None:
            record.deleted_at = now
        db.add(record)
        db.flush()
        return ApplyOutcome.INSERTED

    if not lww_wins(op.clock, op.hlc, row.clock, row.hlc):
        return ApplyOutcome.SKIPPED

    # A winning put revives a soft-deleted row unless it says otherwise
    if "deleted" not in values:
        row.deleted = False
        row.deleted_at = None
    for attr, value in values.items():
        if attr in ("created_at", "updated_at") and value is None:
            continue
        setattr(row, attr, value)
    if row.deleted and row.deleted_at is None:
        row.deleted_at = now
    row.clock = op.clock
    row.hlc = op.hlc
    if "updated_at" not in values or values["updated_at"] is None:
        row.updated_at = now
    db.flush()
    return ApplyOutcome.UPDATED


def apply_operation(db: Session, workspace_id: str, table: SyncedTable, op) -> ApplyOutcome:
    """Apply *op* (a validated push operation) to the row it targets.

    Returns the :class:`ApplyOutcome`; LWW losses report ``SKIPPED`` and
    never raise.
    """

    row = _load_row(db, workspace_id, table, op.pk)
    if op.operation == SyncOp.DELETE:
        return _apply_delete(db, row, op)
    return _apply_put(db, workspace_id, table, row, op)


__all__ = [
    "apply_operation",
    "lww_wins",
    "resolve_deleted_at",
    "sanitize_payload",
]
