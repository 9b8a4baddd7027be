"""
API request and response models for the supplier gate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
suppliers/models.py, which own the internal domain representation. Route
handlers map between the two via the from_* factory classmethods below.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from auth.models import Identity, Role, SessionClaims
from auth.tokens import MAX_PASSWORD_BYTES
from suppliers.models import AccessMode, IssuedLink, SupplierDocument, SupplierProfile, SupplierStatus

# Deliberately loose: deliverability is the mail transport's problem, and a
# strict validator would need the email-validator package.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _check_password_bytes(v: str) -> str:
    # The character cap alone lets multibyte passwords past bcrypt's input limit
    if len(v.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes as UTF-8")
    return v


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Request body for POST /auth/register and POST /auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=64)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


class SessionResponse(BaseModel):
    """Returned on successful register/login. The token itself travels in the cookie."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: Role
    expires_in: int


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: Role
    is_supplier_applicant: bool
    session_expires_at: int

    @classmethod
    def from_identity(cls, identity: Identity, session: SessionClaims) -> "MeResponse":
        return cls(
            user_id=identity.id,
            email=identity.email,
            role=identity.role,
            is_supplier_applicant=identity.is_supplier_applicant,
            session_expires_at=session.expires_at,
        )


class AccountUpdate(BaseModel):
    """Request body for PUT /auth/me.

    A new password must come with the current one. A body that changes
    nothing is refused.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    email: Optional[str] = Field(default=None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(default=None, min_length=8, max_length=64)
    old_password: Optional[str] = Field(default=None, max_length=64)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else _check_password_bytes(v)

    @model_validator(mode="after")
    def _has_change(self) -> "AccountUpdate":
        if self.email is None and self.password is None:
            raise ValueError("provide email, password, or both")
        if self.password is not None and not self.old_password:
            raise ValueError("old_password is required to change the password")
        return self


# ---------------------------------------------------------------------------
# Supplier profiles
# ---------------------------------------------------------------------------


class DocumentRow(BaseModel):
    """Document metadata. The storage path is never exposed."""

    model_config = ConfigDict(frozen=True)

    id: int
    file_name: str
    mime_type: str
    created_at: str

    @classmethod
    def from_document(cls, doc: SupplierDocument) -> "DocumentRow":
        return cls(id=doc.id, file_name=doc.file_name, mime_type=doc.mime_type, created_at=doc.created_at)


class BusinessDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    business_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None


class ProfileResponse(BaseModel):
    """A supplier profile with its documents.

    business is populated only for APPROVED profiles; before approval the
    fields carry no meaning.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    status: SupplierStatus
    rejection_reason: Optional[str] = None
    created_at: str
    updated_at: str
    documents: list[DocumentRow] = Field(default_factory=list)
    business: Optional[BusinessDetails] = None

    @classmethod
    def from_profile(cls, profile: SupplierProfile) -> "ProfileResponse":
        business = None
        if profile.status is SupplierStatus.APPROVED:
            business = BusinessDetails(
                business_name=profile.business_name,
                address=profile.address,
                city=profile.city,
                state=profile.state,
                zip_code=profile.zip_code,
            )
        return cls(
            id=profile.id,
            user_id=profile.user_id,
            status=profile.status,
            rejection_reason=profile.rejection_reason,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
            documents=[DocumentRow.from_document(d) for d in profile.documents],
            business=business,
        )


class UserResponse(BaseModel):
    """One user as the staff directory shows it, with the supplier profile if any."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: Role
    is_supplier_applicant: bool
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    supplier_profile: Optional[ProfileResponse] = None

    @classmethod
    def from_account(cls, identity: Identity, profile: Optional[SupplierProfile]) -> "UserResponse":
        return cls(
            id=identity.id,
            email=identity.email,
            role=identity.role,
            is_supplier_applicant=identity.is_supplier_applicant,
            created_at=identity.created_at,
            last_login=identity.last_login,
            supplier_profile=ProfileResponse.from_profile(profile) if profile is not None else None,
        )


class ProfileUpdate(BaseModel):
    """Request body for PUT /suppliers/profile. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    business_name: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip_code: Optional[str] = Field(default=None, max_length=20)


class RejectRequest(BaseModel):
    """Request body for POST /admin/suppliers/{id}/reject.

    Blank reasons are rejected by the lifecycle with a validation_error, not
    here, so the error shape matches every other lifecycle failure.
    """

    reason: Optional[str] = Field(default=None, max_length=2000)


class DocumentLinkResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    mode: AccessMode
    expires_in: int

    @classmethod
    def from_link(cls, link: IssuedLink) -> "DocumentLinkResponse":
        return cls(url=link.url, mode=link.mode, expires_in=link.expires_in)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
