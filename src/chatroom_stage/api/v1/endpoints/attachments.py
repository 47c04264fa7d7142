# src/chatroom_stage/api/v1/endpoints/attachments.py
"""Image attachment upload and download endpoints."""

from __future__ import annotations

from fastapi import APIRouter, File, Response, UploadFile, status

from chatroom_stage.core.errors import ChatError
from chatroom_stage.schemas.message import AttachmentRecord
from chatroom_stage.services.attachments import AttachmentUpload

from ..dependencies import AttachmentsDep, CurrentUserDep, http_error

router = APIRouter(prefix="/attachments", tags=["attachments"])


@router.post("", response_model=AttachmentRecord, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    current_user: CurrentUserDep,
    attachments: AttachmentsDep,
    file: UploadFile = File(...),
) -> AttachmentRecord:
    """Store an image and return the handle to reference from a message."""
    upload = AttachmentUpload(
        data=await file.read(),
        content_type=file.content_type or "application/octet-stream",
        filename=file.filename,
    )
    try:
        return await attachments.upload(upload, owner_id=current_user)
    except ChatError as exc:
        raise http_error(exc) from exc


@router.get("/{attachment_id}")
async def download_attachment(
    attachment_id: str,
    current_user: CurrentUserDep,
    attachments: AttachmentsDep,
) -> Response:
    """Return the stored image bytes."""
    try:
        record, data = await attachments.open(attachment_id)
    except ChatError as exc:
        raise http_error(exc) from exc
    headers = {}
    if record.filename and record.filename.isascii():
        filename = record.filename.replace('"', "")
        headers["Content-Disposition"] = f'inline; filename="{filename}"'
    return Response(content=data, media_type=record.content_type, headers=headers)
