"""
api/routes/v1/suppliers.py -- Supplier application and document endpoints.

Routes:
  POST   /api/v1/suppliers/apply                        -- submit application (multipart "documents")
  GET    /api/v1/suppliers/profile                      -- own profile and documents
  PUT    /api/v1/suppliers/profile                      -- edit business fields (APPROVED only)
  DELETE /api/v1/suppliers/profile                      -- withdraw / delete own profile
  GET    /api/v1/suppliers/documents/{document_id}/link -- mint a scoped document link
  GET    /api/v1/suppliers/documents/download?token=    -- redeem a scoped document link

Every route except download requires a session cookie. download is authorized
by the scoped token alone so the link can be opened in a new tab or handed to
a viewer without forwarding the session.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from api.limiter import API_LIMIT, limiter
from api.models import DocumentLinkResponse, MessageResponse, ProfileResponse, ProfileUpdate
from auth.dependencies import get_session
from auth.models import SessionClaims
from core.config import get_settings
from core.errors import Conflict, NotFound, Unauthenticated, ValidationError
from suppliers.access import DocumentAccess
from suppliers.lifecycle import SupplierLifecycle, discard_files
from suppliers.models import AccessMode, DocumentUpload
from suppliers.uploads import check_batch_size, store_upload

logger = logging.getLogger("suppliergate.api")

router = APIRouter()


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@limiter.limit(API_LIMIT)
@router.post("/suppliers/apply", response_model=ProfileResponse, status_code=201)
async def apply(
    request: Request,
    documents: Optional[list[UploadFile]] = File(default=None),
    session: SessionClaims = Depends(get_session),
) -> JSONResponse:
    """Submit a supplier application with 1..MAX_UPLOAD_FILES PDF documents.

    Files are written to disk before the application row exists. If anything
    fails after that point the written files are removed again, so a rejected
    request leaves neither rows nor files behind.
    """
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    identity = await asyncio.to_thread(lifecycle.identities.get_by_id, session.user_id)
    if identity is None:
        raise NotFound("User not found.")
    # Cheap early exit; the authoritative check is inside the store transaction
    if identity.is_supplier_applicant:
        raise Conflict("User is already a supplier or has an application in progress.")

    files = documents or []
    check_batch_size(len(files))

    max_bytes = get_settings().max_upload_bytes
    stored: list[DocumentUpload] = []
    # Blocking disk and database work stays off the event loop
    try:
        for upload in files:
            # Read one byte past the limit so oversize files are detected without buffering them whole
            data = await upload.read(max_bytes + 1)
            stored.append(await asyncio.to_thread(store_upload, data, upload.filename, upload.content_type or ""))
        profile = await asyncio.to_thread(lifecycle.apply_as_supplier, session.user_id, stored)
    except Exception:
        discard_files([u.file_path for u in stored])
        raise

    return JSONResponse(
        status_code=201,
        content=ProfileResponse.from_profile(profile).model_dump(mode="json"),
    )


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------


@router.get("/suppliers/profile", response_model=ProfileResponse)
def get_profile(request: Request, session: SessionClaims = Depends(get_session)) -> ProfileResponse:
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    return ProfileResponse.from_profile(lifecycle.get_profile(session.user_id))


@router.put("/suppliers/profile", response_model=ProfileResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    session: SessionClaims = Depends(get_session),
) -> ProfileResponse:
    """Edit business details. Only fields present in the body are changed."""
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No profile fields to update.")
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    return ProfileResponse.from_profile(lifecycle.update_profile(session.user_id, **fields))


@router.delete("/suppliers/profile", response_model=MessageResponse)
def delete_profile(request: Request, session: SessionClaims = Depends(get_session)) -> MessageResponse:
    """Delete the caller's profile in any state, with its documents and files.

    The caller may apply again afterwards.
    """
    lifecycle: SupplierLifecycle = request.app.state.lifecycle
    removed = lifecycle.delete_profile(session.user_id)
    return MessageResponse(message=f"Supplier profile deleted ({len(removed)} document(s) removed).")


# ---------------------------------------------------------------------------
# Document links
# ---------------------------------------------------------------------------


@limiter.limit(API_LIMIT)
@router.get("/suppliers/documents/{document_id}/link", response_model=DocumentLinkResponse)
def document_link(
    request: Request,
    document_id: int,
    session: SessionClaims = Depends(get_session),
) -> DocumentLinkResponse:
    """Mint a short-lived link for one document.

    Owners receive a download link; ADMIN and REVIEWER receive an inline view
    link for any document.
    """
    access: DocumentAccess = request.app.state.document_access
    link = access.issue_access_token(document_id, session)
    return DocumentLinkResponse.from_link(link)


@router.get("/suppliers/documents/download")
def download(request: Request, token: Optional[str] = None) -> FileResponse:
    """Serve the document a scoped token grants, inline or as an attachment."""
    if not token:
        raise Unauthenticated("A document access token is required.")
    access: DocumentAccess = request.app.state.document_access
    resolved = access.resolve(token)
    document = resolved.document
    path = Path(document.file_path)
    if not path.is_file():
        logger.error("Document %d is recorded but missing on disk", document.id)
        raise NotFound("File not found.")
    disposition = "inline" if resolved.mode is AccessMode.VIEW else "attachment"
    return FileResponse(
        path,
        media_type=document.mime_type,
        filename=document.file_name,
        content_disposition_type=disposition,
        headers={
            "Cache-Control": "no-store",
            "X-Content-Type-Options": "nosniff",
        },
    )
