"""Current-state tables replicated to devices.

Each model mirrors one client-side table.  Rows are created by the first
``put`` for a primary key, patched in place by later winning puts and only
ever *soft*-deleted by the sync path.
"""

from functools import lru_cache
from typing import Dict

from sqlalchemy import JSON
from sqlalchemy import Boolean
from sqlalchemy import Column
from sqlalchemy import Integer
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import UniqueConstraint
from sqlalchemy import inspect

from cloudsync.database import Base
from cloudsync.models.enums import SyncedTable

# Columns the resolver stamps itself; a payload can never set them.
SYSTEM_COLUMNS = frozenset({"row_id", "workspace_id", "clock", "hlc"})


class SyncedRecordMixin:
    """Columns shared by every synced table."""

    row_id = Column(Integer, primary_key=True)
    workspace_id = Column(String, nullable=False, index=True)

    deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(Integer, nullable=True)

    # LWW stamp of the write that produced the current state
    clock = Column(Integer, nullable=False, default=0)
    hlc = Column(String, nullable=False, default="")

    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)


class Thread(SyncedRecordMixin, Base):
    __tablename__ = "threads"
    __table_args__ = (UniqueConstraint("workspace_id", "id", name="uq_threads_workspace_pk"),)

    id = Column(String, nullable=False)
    title = Column(String, nullable=True)
    status = Column(String, nullable=False, default="ready")
    pinned = Column(Boolean, nullable=False, default=False)
    last_message_at = Column(Integer, nullable=True)
    parent_thread_id = Column(String, nullable=True)
    project_id = Column(String, nullable=True)
    system_prompt_id = Column(String, nullable=True)
    anchor_message_id = Column(String, nullable=True)
    anchor_index = Column(Integer, nullable=True)
    branch_mode = Column(String, nullable=True)  # "reference" | "copy"
    forked = Column(Boolean, nullable=False, default=False)


class Message(SyncedRecordMixin, Base):
    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("workspace_id", "id", name="uq_messages_workspace_pk"),)

    id = Column(String, nullable=False)
    thread_id = Column(String, nullable=True, index=True)
    role = Column(String, nullable=True)
    data = Column(JSON, nullable=True)
    index_ = Column("index", Integer, nullable=True)
    # HLC-derived, breaks ties when two messages share an index
    order_key = Column(String, nullable=True)
    file_hashes = Column(String, nullable=True)
    pending = Column(Boolean, nullable=True)
    error = Column(String, nullable=True)
    stream_id = Column(String, nullable=True)


class Project(SyncedRecordMixin, Base):
    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("workspace_id", "id", name="uq_projects_workspace_pk"),)

    id = Column(String, nullable=False)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)


class Post(SyncedRecordMixin, Base):
    __tablename__ = "posts"
    __table_args__ = (UniqueConstraint("workspace_id", "id", name="uq_posts_workspace_pk"),)

    id = Column(String, nullable=False)
    title = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    post_type = Column(String, nullable=True)
    meta = Column(JSON, nullable=True)
    file_hashes = Column(String, nullable=True)


class KvEntry(SyncedRecordMixin, Base):
    __tablename__ = "kv"
    __table_args__ = (UniqueConstraint("workspace_id", "id", name="uq_kv_workspace_pk"),)

    id = Column(String, nullable=False)
    name = Column(String, nullable=True, index=True)
    value = Column(Text, nullable=True)


class FileMeta(SyncedRecordMixin, Base):
    """File metadata only – blobs travel through the storage service."""

    __tablename__ = "file_meta"
    __table_args__ = (UniqueConstraint("workspace_id", "hash", name="uq_file_meta_workspace_hash"),)

    hash = Column(String, nullable=False)  # sha256:<hex> or md5:<hex>
    name = Column(String, nullable=True)
    mime_type = Column(String, nullable=True)
    kind = Column(String, nullable=True)  # "image" | "pdf"
    size_bytes = Column(Integer, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    page_count = Column(Integer, nullable=True)
    ref_count = Column(Integer, nullable=False, default=0)
    storage_provider_id = Column(String, nullable=True)


class Notification(SyncedRecordMixin, Base):
    __tablename__ = "notifications"
    __table_args__ = (UniqueConstraint("workspace_id", "id", name="uq_notifications_workspace_pk"),)

    id = Column(String, nullable=False)
    user_id = Column(String, nullable=True, index=True)
    thread_id = Column(String, nullable=True)
    document_id = Column(String, nullable=True)
    type = Column(String, nullable=True)
    title = Column(String, nullable=True)
    body = Column(Text, nullable=True)
    actions = Column(JSON, nullable=True)
    read_at = Column(Integer, nullable=True)


SYNCED_MODELS = {
    SyncedTable.THREADS: Thread,
    SyncedTable.MESSAGES: Message,
    SyncedTable.PROJECTS: Project,
    SyncedTable.POSTS: Post,
    SyncedTable.KV: KvEntry,
    SyncedTable.FILE_META: FileMeta,
    SyncedTable.NOTIFICATIONS: Notification,
}


def model_for(table: SyncedTable):
    """Return the SQLAlchemy model backing *table*."""

    return SYNCED_MODELS[table]


@lru_cache(maxsize=None)
def writable_columns(table: SyncedTable) -> Dict[str, str]:
    """Map payload keys (column names) to model attribute names.

    System columns and the primary-key field are excluded: the resolver sets
    those from the operation itself.
    """

    mapper = inspect(model_for(table))
    columns: Dict[str, str] = {}
    for attr in mapper.column_attrs:
        column_name = attr.columns[0].name
        if column_name in SYSTEM_COLUMNS or column_name == table.pk_field:
            continue
        columns[column_name] = attr.key
    return columns


__all__ = [
    "SyncedRecordMixin",
    "Thread",
    "Message",
    "Project",
    "Post",
    "KvEntry",
    "FileMeta",
    "Notification",
    "SYNCED_MODELS",
    "model_for",
    "writable_columns",
]
