from sqlalchemy import JSON
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import UniqueConstraint
from sqlalchemy.sql import func

from cloudsync.database import Base
from cloudsync.models.enums import WorkspaceRole

# ---------------------------------------------------------------------------
# Membership – minimal record for the default membership checker
# ---------------------------------------------------------------------------


class WorkspaceMember(Base):
    """A user's membership in a workspace.

    Workspace and user CRUD live in a separate service; this table only
    mirrors what the sync endpoints need to authorise a caller.
    """

    __tablename__ = "workspace_members"
    __table_args__ = (UniqueConstraint("workspace_id", "user_id", name="uq_workspace_members_workspace_user"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    role = Column(
        SAEnum(
            WorkspaceRole,
            native_enum=False,
            name="workspace_role_enum",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=WorkspaceRole.EDITOR,
    )
    created_at = Column(DateTime, server_default=func.now())


# ---------------------------------------------------------------------------
# Sync protocol bookkeeping
# ---------------------------------------------------------------------------


class VersionCounter(Base):
    """High-water mark of server versions handed out for one workspace.

    Only :mod:`cloudsync.services.version_allocator` mutates ``value``.
    """

    __tablename__ = "server_version_counters"

    id = Column(Integer, primary_key=True)
    workspace_id = Column(String, nullable=False, unique=True, index=True)
    value = Column(Integer, nullable=False, default=0)


class ChangeLogEntry(Base):
    """One immutable row per applied push operation.

    ``op_id`` is the client-generated idempotency key and is unique across
    the deployment, not just the workspace.
    """

    __tablename__ = "change_log"
    __table_args__ = (
        UniqueConstraint("workspace_id", "server_version", name="uq_change_log_workspace_version"),
        Index("ix_change_log_workspace_version", "workspace_id", "server_version"),
    )

    id = Column(Integer, primary_key=True)
    workspace_id = Column(String, nullable=False)
    server_version = Column(Integer, nullable=False)

    table_name = Column(String, nullable=False)
    pk = Column(String, nullable=False)
    op = Column(String, nullable=False)  # SyncOp value
    payload = Column(JSON, nullable=True)

    # Client stamp
    clock = Column(Integer, nullable=False)
    hlc = Column(String, nullable=False)
    device_id = Column(String, nullable=False)
    op_id = Column(String, nullable=False, unique=True, index=True)

    created_at = Column(Integer, nullable=False, index=True)


class Tombstone(Base):
    """Most recent delete for a ``(workspace, table, pk)``.

    Kept separately from the record's own ``deleted`` flag so retention GC can
    decide when a delete is safe to forget.
    """

    __tablename__ = "tombstones"
    __table_args__ = (
        UniqueConstraint("workspace_id", "table_name", "pk", name="uq_tombstones_workspace_table_pk"),
        Index("ix_tombstones_workspace_version", "workspace_id", "server_version"),
    )

    id = Column(Integer, primary_key=True)
    workspace_id = Column(String, nullable=False)
    table_name = Column(String, nullable=False)
    pk = Column(String, nullable=False)
    deleted_at = Column(Integer, nullable=False)
    clock = Column(Integer, nullable=False)
    server_version = Column(Integer, nullable=False)
    created_at = Column(Integer, nullable=False)


class DeviceCursor(Base):
    """Latest server version a device reported as consumed."""

    __tablename__ = "device_cursors"
    __table_args__ = (
        UniqueConstraint("workspace_id", "device_id", name="uq_device_cursors_workspace_device"),
        Index("ix_device_cursors_workspace_version", "workspace_id", "last_seen_version"),
    )

    id = Column(Integer, primary_key=True)
    workspace_id = Column(String, nullable=False)
    device_id = Column(String, nullable=False)
    last_seen_version = Column(Integer, nullable=False, default=0)
    updated_at = Column(Integer, nullable=False)
