# src/chatroom_stage/models/attachment.py
"""Metadata for blobs held in the attachment object store."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chatroom_stage.db.ids import new_object_id
from chatroom_stage.db.session import Base
from chatroom_stage.db.time import utcnow

from .chat_room import USER_ID_LENGTH


class Attachment(Base):
    """Image uploaded alongside a message; bytes live on disk under ``id``."""

    __tablename__ = "attachment"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_object_id)
    owner_id: Mapped[str | None] = mapped_column(String(USER_ID_LENGTH), nullable=True)
    filename: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
