# src/chatroom_stage/services/attachments.py
"""Attachment object store backed by the local filesystem."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.orm import Session

from chatroom_stage.core.errors import NotFoundError, ValidationError, translate_errors
from chatroom_stage.core.settings import settings
from chatroom_stage.db.ids import new_object_id
from chatroom_stage.models import Attachment
from chatroom_stage.schemas.message import AttachmentRecord

# Configure logger for this module
logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class AttachmentUpload:
    """Raw image bytes handed to the store."""

    data: bytes
    content_type: str
    filename: str | None = None


class AttachmentStore:
    """Stores image blobs on disk and their metadata in the database."""

    def __init__(
        self,
        db: Session,
        root: str | Path | None = None,
        max_bytes: int | None = None,
    ) -> None:
        self.db = db
        self.root = Path(root or settings.attachments_dir)
        self.max_bytes = max_bytes or settings.attachment_max_bytes

    def validate(self, blob: AttachmentUpload) -> None:
        """Reject blobs that are not images or exceed the size cap.

        Raises:
            ValidationError: If the blob is empty, not ``image/*`` or too large.
        """
        if not (blob.content_type or "").lower().startswith("image/"):
            raise ValidationError("Please select an image file")
        if not blob.data:
            raise ValidationError("Attachment is empty")
        if len(blob.data) > self.max_bytes:
            limit_mb = self.max_bytes / BYTES_PER_MB
            raise ValidationError(f"Image must be less than {limit_mb:g}MB")

    @translate_errors("Failed to upload image.")
    async def upload(self, blob: AttachmentUpload, owner_id: str | None = None) -> AttachmentRecord:
        """Persist ``blob`` and return its metadata; the record ID is the opaque handle."""
        self.validate(blob)

        attachment_id = new_object_id()
        path = self._path(attachment_id)
        self.root.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, blob.data)

        attachment = Attachment(
            id=attachment_id,
            owner_id=owner_id,
            filename=blob.filename,
            content_type=blob.content_type,
            size_bytes=len(blob.data),
        )
        self.db.add(attachment)
        try:
            self.db.commit()
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.debug("Stored attachment %s (%d bytes)", attachment_id, len(blob.data))
        return AttachmentRecord.model_validate(attachment)

    @translate_errors("Failed to delete image.")
    async def delete(self, attachment_id: str) -> None:
        """Remove an attachment's bytes and metadata; unknown IDs are ignored."""
        attachment = self.db.get(Attachment, attachment_id)
        if attachment is not None:
            self.db.delete(attachment)
            self.db.commit()
        await asyncio.to_thread(self._path(attachment_id).unlink, missing_ok=True)
        logger.debug("Deleted attachment %s", attachment_id)

    @translate_errors("Failed to load image.")
    async def open(self, attachment_id: str) -> tuple[AttachmentRecord, bytes]:
        """Return an attachment's metadata and bytes.

        Raises:
            NotFoundError: If the metadata or the file is missing.
        """
        attachment = self.db.get(Attachment, attachment_id)
        path = self._path(attachment_id)
        if attachment is None or not path.is_file():
            raise NotFoundError("Attachment not found")
        data = await asyncio.to_thread(path.read_bytes)
        return AttachmentRecord.model_validate(attachment), data

    def _path(self, attachment_id: str) -> Path:
        # IDs are generated hex strings; anything else never reaches the disk.
        if not attachment_id.isalnum():
            raise NotFoundError("Attachment not found")
        return self.root / attachment_id
