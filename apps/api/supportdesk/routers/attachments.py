"""Attachment endpoints: upload into a ticket conversation, serve locally stored files."""

import os
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from supportdesk.core.config import settings
from supportdesk.core.deps import get_current_session, get_db
from supportdesk.core.errors import NotFoundError, TicketClosedError, ValidationError
from supportdesk.db.enums import TicketStatus
from supportdesk.schemas.auth import UserSession
from supportdesk.schemas.ticketing import AttachmentUploadResponse, MessageRead, TicketRead
from supportdesk.services import attachment_service, change_feed_service, message_service, ticket_service

router = APIRouter(tags=["Attachments"])

# Multipart framing around the file part.
FORM_OVERHEAD_BYTES = 64 * 1024


def _declared_body_too_large(content_length: str | None) -> bool:
    if not content_length or not content_length.isdigit():
        return False
    return int(content_length) > settings.MAX_ATTACHMENT_BYTES + FORM_OVERHEAD_BYTES


async def _spooled_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size

    def _seek_end() -> int:
        position = file.file.tell()
        size = file.file.seek(0, os.SEEK_END)
        file.file.seek(position)
        return size

    return await run_in_threadpool(_seek_end)


@router.post(
    "/tickets/{ticket_id}/attachments",
    response_model=AttachmentUploadResponse,
    status_code=201,
)
async def upload_attachment(
    ticket_id: UUID,
    request: Request,
    file: UploadFile = File(...),
    content: str = Form(""),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> AttachmentUploadResponse:
    """
    Store a file and append a message carrying its URL.

    Validation and the closed check happen before anything is written.
    """
    if _declared_body_too_large(request.headers.get("content-length")):
        raise ValidationError("File size exceeds upload limit")

    ticket = await run_in_threadpool(
        ticket_service.get_ticket_for_session, db, session=session, ticket_id=ticket_id
    )
    if ticket.status == TicketStatus.CLOSED:
        raise TicketClosedError("This ticket has been closed.")

    size = await _spooled_size(file)
    attachment_service.validate_attachment(file.filename, file.content_type, size)

    data = await file.read()
    key = attachment_service.build_storage_key(ticket.id, file.filename)
    url = await run_in_threadpool(
        attachment_service.store_attachment, key, data, file.content_type
    )

    message = await run_in_threadpool(
        message_service.append_message,
        db,
        ticket=ticket,
        sender_id=session.user_id,
        content=content,
        attachments=[url],
        attachment_filename=file.filename,
    )
    payload = MessageRead.model_validate(message)
    touched = await run_in_threadpool(TicketRead.model_validate, ticket)
    await change_feed_service.publish_message_inserted(payload)
    await change_feed_service.publish_ticket_updated(touched)
    return AttachmentUploadResponse(url=url, message=payload)


@router.get(attachment_service.LOCAL_FILES_ROUTE + "/{storage_key:path}")
def download_local_file(storage_key: str) -> FileResponse:
    """Serve files from the local backend (dev). S3 URLs are served by the bucket."""
    if settings.STORAGE_BACKEND != "local":
        raise NotFoundError("File not found")
    path = attachment_service.local_file_path(storage_key)
    if not os.path.isfile(path):
        raise NotFoundError("File not found")
    return FileResponse(path)
