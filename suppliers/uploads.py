"""
suppliers/uploads.py -- Validation and on-disk storage of application documents.

Files are written under UPLOAD_DIR with a random name; the client-supplied
name is kept only as display metadata (SupplierDocument.file_name) and is
reduced to its last path component so it cannot steer where anything is
written or served from.
"""

from __future__ import annotations

import logging
import secrets
from pathlib import Path

from core.config import get_settings
from core.errors import PayloadTooLarge, ValidationError
from suppliers.models import DocumentUpload

logger = logging.getLogger("suppliergate.uploads")

_MAX_NAME_LENGTH = 255


def check_batch_size(count: int) -> None:
    """Reject an application carrying zero files or more than MAX_UPLOAD_FILES."""
    limit = get_settings().max_upload_files
    if count == 0:
        raise ValidationError("Documents are required to apply.")
    if count > limit:
        raise ValidationError(f"Too many files. Please upload a maximum of {limit} files.")


def check_upload(file_name: str, mime_type: str, size: int) -> None:
    settings = get_settings()
    if mime_type not in settings.allowed_upload_types:
        allowed = ", ".join(settings.allowed_upload_types)
        raise ValidationError(f"Unsupported file type {mime_type!r}. Allowed: {allowed}.", detail=file_name)
    if size == 0:
        raise ValidationError("Uploaded file is empty.", detail=file_name)
    if size > settings.max_upload_bytes:
        mb = settings.max_upload_bytes // (1024 * 1024)
        raise PayloadTooLarge(f"File size limit exceeded. Each file must be less than {mb} MB.", detail=file_name)


def clean_file_name(file_name: str | None) -> str:
    name = Path(file_name or "").name.strip()
    return name[:_MAX_NAME_LENGTH] or "document"


def store_upload(data: bytes, file_name: str | None, mime_type: str, upload_dir: str | None = None) -> DocumentUpload:
    """Validate one upload and write it to disk.

    Returns the DocumentUpload to hand to SupplierLifecycle.apply_as_supplier.
    """
    display_name = clean_file_name(file_name)
    check_upload(display_name, mime_type, len(data))
    directory = Path(upload_dir or get_settings().upload_dir)
    directory.mkdir(parents=True, exist_ok=True)
    suffix = Path(display_name).suffix.lower()[:10]
    target = directory / f"{secrets.token_hex(16)}{suffix}"
    target.write_bytes(data)
    logger.debug("Stored upload %s as %s (%d bytes)", display_name, target, len(data))
    return DocumentUpload(file_name=display_name, file_path=str(target), mime_type=mime_type)
