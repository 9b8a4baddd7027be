"""
suppliers/access.py -- Scoped document access tokens and the gate that
redeems them.

A document link is a URL carrying a short-lived, single-purpose JWT:

    {"typ": "document_access", "doc": <document id>, "mode": "view"|"download",
     "owner": <profile id, owner links only>, "iat": ..., "exp": ...}

Issuance rules (DocumentAccess.issue_access_token):
  SUPPLIER / REGULAR  -- must own the document's profile; mode "download",
                         15 minutes; the token records the owning profile id.
  ADMIN / REVIEWER    -- no ownership check; mode "view", 30 minutes; no owner.
  anything else       -- Forbidden.

Redemption (DocumentAccess.resolve) needs no session: the token IS the
authorization. The gate only re-checks what can have changed since issuance:
the document may be gone (NotFound), or no longer belong to the profile the
token was minted for (Forbidden).

The token shares the session signing key; the "typ" claim keeps a session
token from being accepted here and vice versa. Every decoding failure
collapses into InvalidCredential, same as session verification.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode

from jose import JWTError, jwt

from auth.models import Role, SessionClaims
from auth.tokens import ALGORITHM
from core.config import get_settings
from core.errors import Forbidden, InvalidCredential, NotFound
from suppliers.models import AccessMode, DocumentGrant, IssuedLink, ResolvedDocument
from suppliers.store import SupplierStore

logger = logging.getLogger("suppliergate.access")

_settings = get_settings()

_DOCUMENT_TYPE = "document_access"
DOWNLOAD_PATH = "/api/v1/suppliers/documents/download"

_OWNER_ROLES = frozenset({Role.SUPPLIER, Role.REGULAR})
_STAFF_ROLES = frozenset({Role.ADMIN, Role.REVIEWER})


# ---------------------------------------------------------------------------
# Token encode / decode
# ---------------------------------------------------------------------------


def create_document_token(
    document_id: int,
    mode: AccessMode,
    owner_profile_id: Optional[int],
    lifetime_seconds: int,
    now: Optional[datetime] = None,
) -> str:
    """Sign a scoped access token for one document and one access mode."""
    issued = now or datetime.now(timezone.utc)
    payload = {
        "typ": _DOCUMENT_TYPE,
        "doc": document_id,
        "mode": mode.value,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=lifetime_seconds)).timestamp()),
    }
    if owner_profile_id is not None:
        payload["owner"] = owner_profile_id
    return jwt.encode(payload, _settings.secret_key, algorithm=ALGORITHM)


def decode_document_token(token: str) -> DocumentGrant:
    """Verify a scoped access token. Raises InvalidCredential on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidCredential() from exc
    if payload.get("typ") != _DOCUMENT_TYPE:
        raise InvalidCredential()
    try:
        owner = payload.get("owner")
        return DocumentGrant(
            document_id=int(payload["doc"]),
            mode=AccessMode(payload["mode"]),
            owner_profile_id=int(owner) if owner is not None else None,
            expires_at=int(payload["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidCredential() from exc


# ---------------------------------------------------------------------------
# Issuer + gate
# ---------------------------------------------------------------------------


class DocumentAccess:
    def __init__(self, suppliers: SupplierStore, base_url: str = "") -> None:
        self.suppliers = suppliers
        self.base_url = (base_url or _settings.base_url).rstrip("/")

    def issue_access_token(
        self,
        document_id: int,
        requester: SessionClaims,
        now: Optional[datetime] = None,
    ) -> IssuedLink:
        """Mint a link for document_id scoped to what requester may do with it."""
        found = self.suppliers.get_document_owner(document_id)
        if found is None:
            raise NotFound("File not found.")
        document, owner_id = found

        if requester.role in _OWNER_ROLES:
            if owner_id != requester.user_id:
                raise Forbidden("You do not have permission to access this file.")
            mode = AccessMode.DOWNLOAD
            lifetime = _settings.download_link_seconds
            owner_profile_id: Optional[int] = document.profile_id
        elif requester.role in _STAFF_ROLES:
            mode = AccessMode.VIEW
            lifetime = _settings.view_link_seconds
            owner_profile_id = None
        else:
            raise Forbidden("You do not have permission to access this file.")

        token = create_document_token(document.id, mode, owner_profile_id, lifetime, now=now)
        logger.info(
            "Issued %s link for document %d to user %d (%ds)",
            mode.value,
            document.id,
            requester.user_id,
            lifetime,
        )
        url = f"{self.base_url}{DOWNLOAD_PATH}?{urlencode({'token': token})}"
        return IssuedLink(token=token, url=url, mode=mode, expires_in=lifetime)

    def resolve(self, token: str) -> ResolvedDocument:
        """Authorize one transfer from a scoped token alone.

        Raises InvalidCredential, NotFound or Forbidden.
        """
        grant = decode_document_token(token)
        document = self.suppliers.get_document(grant.document_id)
        if document is None:
            # Deleted after the link was issued
            raise NotFound("File not found.")
        if grant.owner_profile_id is not None and document.profile_id != grant.owner_profile_id:
            logger.warning(
                "Document %d token bound to profile %d, document now belongs to profile %d",
                document.id,
                grant.owner_profile_id,
                document.profile_id,
            )
            raise Forbidden("You do not have permission to download this file.")
        return ResolvedDocument(document=document, mode=grant.mode)
