"""create chat tables

Revision ID: 5c1e2a7d9b40
Revises:
Create Date: 2026-10-17 09:12:41.208113

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e2a7d9b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create rooms, unread counters, messages and attachment metadata."""
    op.create_table(
        "chat_room",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("participant_low", sa.String(length=128), nullable=False),
        sa.Column("participant_high", sa.String(length=128), nullable=False),
        sa.Column("pair_key", sa.String(length=257), nullable=False),
        sa.Column("last_message_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("pair_key"),
    )
    op.create_index("ix_chat_room_participant_low", "chat_room", ["participant_low"])
    op.create_index("ix_chat_room_participant_high", "chat_room", ["participant_high"])

    op.create_table(
        "chat_room_participant",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("room_id", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("unread_count", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["room_id"], ["chat_room.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("room_id", "user_id", name="uq_room_participant"),
    )
    op.create_index("ix_chat_room_participant_room_id", "chat_room_participant", ["room_id"])
    op.create_index("ix_chat_room_participant_user_id", "chat_room_participant", ["user_id"])

    op.create_table(
        "chat_message",
        sa.Column("seq", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("chat_room_id", sa.String(length=32), nullable=False),
        sa.Column("sender_id", sa.String(length=128), nullable=False),
        sa.Column("text", sa.Text(), nullable=False, server_default=""),
        sa.Column("attachment_id", sa.String(length=32), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["chat_room_id"], ["chat_room.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("seq"),
        sa.UniqueConstraint("id"),
    )
    op.create_index("ix_chat_message_sender_id", "chat_message", ["sender_id"])
    op.create_index("ix_chat_message_room_created", "chat_message", ["chat_room_id", "created_at"])

    op.create_table(
        "attachment",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=True),
        sa.Column("filename", sa.Text(), nullable=True),
        sa.Column("content_type", sa.String(length=128), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop every chat table."""
    op.drop_table("attachment")
    op.drop_index("ix_chat_message_room_created", table_name="chat_message")
    op.drop_index("ix_chat_message_sender_id", table_name="chat_message")
    op.drop_table("chat_message")
    op.drop_index("ix_chat_room_participant_user_id", table_name="chat_room_participant")
    op.drop_index("ix_chat_room_participant_room_id", table_name="chat_room_participant")
    op.drop_table("chat_room_participant")
    op.drop_index("ix_chat_room_participant_high", table_name="chat_room")
    op.drop_index("ix_chat_room_participant_low", table_name="chat_room")
    op.drop_table("chat_room")
