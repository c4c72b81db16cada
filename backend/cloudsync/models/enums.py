"""Shared *Enum* definitions for SQLAlchemy & Pydantic models.

The Enums inherit from ``str`` so that:

* JSON serialisation remains unchanged (values render as plain strings).
* Equality checks against raw literals (``op == "put"``) keep working, which
  is how the wire format and the ``change_log.op`` column store them.
"""

from __future__ import annotations

from enum import Enum


class SyncOp(str, Enum):
    PUT = "put"
    DELETE = "delete"


class SyncErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"  # reserved – LWW losses are silent no-ops
    NOT_FOUND = "NOT_FOUND"
    SERVER_ERROR = "SERVER_ERROR"


class SyncedTable(str, Enum):
    """Closed set of tables devices may replicate.

    The enum *is* the push allowlist; every member maps to exactly one
    SQLAlchemy model (see :mod:`cloudsync.models.synced`).
    """

    THREADS = "threads"
    MESSAGES = "messages"
    PROJECTS = "projects"
    POSTS = "posts"
    KV = "kv"
    FILE_META = "file_meta"
    NOTIFICATIONS = "notifications"

    @property
    def pk_field(self) -> str:
        # file_meta rows are content-addressed
        return "hash" if self is SyncedTable.FILE_META else "id"

    @classmethod
    def parse(cls, name: str) -> "SyncedTable | None":
        """Return the member for *name* or ``None`` when it is not allowlisted."""

        try:
            return cls(name)
        except ValueError:
            return None


class ApplyOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"
    SKIPPED = "skipped"


class WorkspaceRole(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"


__all__ = [
    "SyncOp",
    "SyncErrorCode",
    "SyncedTable",
    "ApplyOutcome",
    "WorkspaceRole",
]
