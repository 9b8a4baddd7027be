"""
suppliers/models.py -- Domain dataclasses for supplier applications.

These are pure data containers with zero logic. The state machine lives in
suppliers/lifecycle.py, the access rules in suppliers/access.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SupplierStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AccessMode(str, Enum):
    VIEW = "view"  # served inline
    DOWNLOAD = "download"  # served as an attachment


# Fields an approved supplier may edit on their own profile
PROFILE_FIELDS = ("business_name", "address", "city", "state", "zip_code")


@dataclass
class SupplierDocument:
    """A file submitted with a supplier application.

    Created in one batch with its profile and never modified afterwards;
    removed only when the profile is deleted.
    """

    profile_id: int
    file_name: str  # original client-side name, used for Content-Disposition
    file_path: str  # location on disk under UPLOAD_DIR
    mime_type: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class SupplierProfile:
    """One user's supplier application and, once approved, business details.

    rejection_reason is set only when status is REJECTED. Business fields are
    meaningful only once status is APPROVED.
    """

    user_id: int
    status: SupplierStatus = SupplierStatus.PENDING
    rejection_reason: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
    documents: list[SupplierDocument] = field(default_factory=list)


@dataclass(frozen=True)
class DocumentUpload:
    """An accepted upload already written to disk, not yet recorded."""

    file_name: str
    file_path: str
    mime_type: str


@dataclass(frozen=True)
class DocumentGrant:
    """Verified contents of a scoped document access token."""

    document_id: int
    mode: AccessMode
    owner_profile_id: Optional[int]
    expires_at: int


@dataclass(frozen=True)
class IssuedLink:
    """A freshly minted document link handed back to the requester."""

    token: str
    url: str
    mode: AccessMode
    expires_in: int


@dataclass(frozen=True)
class ResolvedDocument:
    """A document the gate has authorized for exactly one transfer."""

    document: SupplierDocument
    mode: AccessMode
