"""Attachment validation and storage for ticket messages."""

from __future__ import annotations

import logging
import os
import secrets
import time
from uuid import UUID

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from supportdesk.core.config import settings
from supportdesk.core.errors import AttachmentUploadError, ValidationError


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

ALLOWED_MIME_PREFIXES = ("image/", "video/")
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
LOCAL_FILES_ROUTE = "/attachments/files"


def is_allowed_content_type(content_type: str | None) -> bool:
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if not mime:
        return False
    return mime.startswith(ALLOWED_MIME_PREFIXES) or mime in ALLOWED_MIME_TYPES


def validate_attachment(
    filename: str | None,
    content_type: str | None,
    size_bytes: int,
    *,
    max_size_bytes: int | None = None,
) -> None:
    """
    Reject files before any upload is attempted.

    Raises:
        ValidationError: empty name, oversized, or disallowed type
    """
    max_size_bytes = max_size_bytes or settings.MAX_ATTACHMENT_BYTES
    if not filename or not filename.strip():
        raise ValidationError("Attachment filename is required")
    if size_bytes > max_size_bytes:
        max_mb = max_size_bytes / (1024 * 1024)
        raise ValidationError(f"File size exceeds {max_mb:.0f} MB limit")
    if not is_allowed_content_type(content_type):
        raise ValidationError(f"Content type '{content_type}' not allowed")


def build_storage_key(ticket_id: UUID, filename: str) -> str:
    """``<ticket_id>/<epoch ms>-<random>.<ext>``; the original name is not kept."""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"{ticket_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"


# =============================================================================
# Storage Backend
# =============================================================================

def _get_s3_client():
    return boto3.client("s3", region_name=settings.S3_REGION)


def _get_local_storage_path() -> str:
    path = settings.LOCAL_STORAGE_PATH
    os.makedirs(path, exist_ok=True)
    return path


def local_file_path(storage_key: str) -> str:
    """Resolve a key under the local root; refuses keys that escape it."""
    root = os.path.realpath(_get_local_storage_path())
    path = os.path.realpath(os.path.join(root, storage_key))
    if os.path.commonpath([root, path]) != root:
        raise ValidationError("Invalid attachment path")
    return path


def public_url(storage_key: str) -> str:
    if settings.STORAGE_BACKEND == "s3":
        return f"https://{settings.S3_BUCKET}.s3.{settings.S3_REGION}.amazonaws.com/{storage_key}"
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}{LOCAL_FILES_ROUTE}/{storage_key}"


def store_attachment(storage_key: str, data: bytes, content_type: str) -> str:
    """
    Store bytes in the configured backend and return their public URL.

    Raises:
        AttachmentUploadError: the backend refused the write
    """
    try:
        if settings.STORAGE_BACKEND == "s3":
            _get_s3_client().put_object(
                Bucket=settings.S3_BUCKET,
                Key=storage_key,
                Body=data,
                ContentType=content_type,
            )
        else:
            path = local_file_path(storage_key)
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
    except (BotoCoreError, ClientError, OSError) as exc:
        logger.warning(f"Attachment upload failed for {storage_key}: {exc}")
        raise AttachmentUploadError("Failed to upload file") from exc
    return public_url(storage_key)
