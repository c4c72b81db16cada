"""Initial sync schema

Revision ID: 3c1f0a9d2b7e
Revises:
Create Date: 2026-03-02 10:14:05.412870

"""

from typing import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c1f0a9d2b7e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _synced_columns():
    """Columns every synced table carries besides its domain fields."""
    return [
        sa.Column("row_id", sa.Integer(), primary_key=True),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.Integer(), nullable=True),
        sa.Column("clock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hlc", sa.String(), nullable=False, server_default=""),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.Integer(), nullable=False),
    ]


def _create_synced_table(name: str, pk_field: str, *columns) -> None:
    op.create_table(
        name,
        *_synced_columns(),
        sa.Column(pk_field, sa.String(), nullable=False),
        *columns,
        sa.UniqueConstraint("workspace_id", pk_field, name=f"uq_{name}_workspace_{'hash' if pk_field == 'hash' else 'pk'}"),
    )
    op.create_index(f"ix_{name}_workspace_id", name, ["workspace_id"])


def upgrade() -> None:
    """Create bookkeeping tables and the synced tables."""
    # Membership -----------------------------------------------------------
    op.create_table(
        "workspace_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("role", sa.String(length=6), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_members_workspace_user"),
    )
    op.create_index("ix_workspace_members_id", "workspace_members", ["id"])
    op.create_index("ix_workspace_members_workspace_id", "workspace_members", ["workspace_id"])
    op.create_index("ix_workspace_members_user_id", "workspace_members", ["user_id"])

    # Sync bookkeeping -----------------------------------------------------
    op.create_table(
        "server_version_counters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_server_version_counters_workspace_id", "server_version_counters", ["workspace_id"], unique=True
    )

    op.create_table(
        "change_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("server_version", sa.Integer(), nullable=False),
        sa.Column("table_name", sa.String(), nullable=False),
        sa.Column("pk", sa.String(), nullable=False),
        sa.Column("op", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("clock", sa.Integer(), nullable=False),
        sa.Column("hlc", sa.String(), nullable=False),
        sa.Column("device_id", sa.String(), nullable=False),
        sa.Column("op_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.UniqueConstraint("workspace_id", "server_version", name="uq_change_log_workspace_version"),
    )
    op.create_index("ix_change_log_workspace_version", "change_log", ["workspace_id", "server_version"])
    op.create_index("ix_change_log_op_id", "change_log", ["op_id"], unique=True)
    op.create_index("ix_change_log_created_at", "change_log", ["created_at"])

    op.create_table(
        "tombstones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("table_name", sa.String(), nullable=False),
        sa.Column("pk", sa.String(), nullable=False),
        sa.Column("deleted_at", sa.Integer(), nullable=False),
        sa.Column("clock", sa.Integer(), nullable=False),
        sa.Column("server_version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.UniqueConstraint("workspace_id", "table_name", "pk", name="uq_tombstones_workspace_table_pk"),
    )
    op.create_index("ix_tombstones_workspace_version", "tombstones", ["workspace_id", "server_version"])

    op.create_table(
        "device_cursors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("workspace_id", sa.String(), nullable=False),
        sa.Column("device_id", sa.String(), nullable=False),
        sa.Column("last_seen_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.Integer(), nullable=False),
        sa.UniqueConstraint("workspace_id", "device_id", name="uq_device_cursors_workspace_device"),
    )
    op.create_index("ix_device_cursors_workspace_version", "device_cursors", ["workspace_id", "last_seen_version"])

    # Synced tables --------------------------------------------------------
    _create_synced_table(
        "threads",
        "id",
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="ready"),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_message_at", sa.Integer(), nullable=True),
        sa.Column("parent_thread_id", sa.String(), nullable=True),
        sa.Column("project_id", sa.String(), nullable=True),
        sa.Column("system_prompt_id", sa.String(), nullable=True),
        sa.Column("anchor_message_id", sa.String(), nullable=True),
        sa.Column("anchor_index", sa.Integer(), nullable=True),
        sa.Column("branch_mode", sa.String(), nullable=True),
        sa.Column("forked", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    _create_synced_table(
        "messages",
        "id",
        sa.Column("thread_id", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("index", sa.Integer(), nullable=True),
        sa.Column("order_key", sa.String(), nullable=True),
        sa.Column("file_hashes", sa.String(), nullable=True),
        sa.Column("pending", sa.Boolean(), nullable=True),
        sa.Column("error", sa.String(), nullable=True),
        sa.Column("stream_id", sa.String(), nullable=True),
    )
    op.create_index("ix_messages_thread_id", "messages", ["thread_id"])
    _create_synced_table(
        "projects",
        "id",
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
    )
    _create_synced_table(
        "posts",
        "id",
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("post_type", sa.String(), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=True),
        sa.Column("file_hashes", sa.String(), nullable=True),
    )
    _create_synced_table(
        "kv",
        "id",
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("value", sa.Text(), nullable=True),
    )
    op.create_index("ix_kv_name", "kv", ["name"])
    _create_synced_table(
        "file_meta",
        "hash",
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("mime_type", sa.String(), nullable=True),
        sa.Column("kind", sa.String(), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=True),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("page_count", sa.Integer(), nullable=True),
        sa.Column("ref_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("storage_provider_id", sa.String(), nullable=True),
    )
    _create_synced_table(
        "notifications",
        "id",
        sa.Column("user_id", sa.String(), nullable=True),
        sa.Column("thread_id", sa.String(), nullable=True),
        sa.Column("document_id", sa.String(), nullable=True),
        sa.Column("type", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("actions", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.Integer(), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    """Drop everything created in upgrade()."""
    for name in ("notifications", "file_meta", "kv", "posts", "projects", "messages", "threads"):
        op.drop_table(name)
    op.drop_table("device_cursors")
    op.drop_table("tombstones")
    op.drop_table("change_log")
    op.drop_table("server_version_counters")
    op.drop_table("workspace_members")
